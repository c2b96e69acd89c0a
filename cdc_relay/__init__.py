"""Relay of normalized change-data-capture events to Kafka."""

__version__ = "0.1.0"

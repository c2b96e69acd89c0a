"""
Normalizer for raw Debezium change envelopes.

This module provides:
- Parsing of the raw envelope text
- Classification of the Debezium op code
- Routing key extraction from the row image
- Serialization of the canonical output message

Normalization is total: malformed input degrades to an UNKNOWN event
instead of raising, so one bad upstream event cannot stop the stream.
"""

import json
import logging
from typing import Any, Optional, Union

from .models import CanonicalMessage, NormalizedEvent, OperationType
from ..monitoring.middleware import record_decode_fallback, record_serialization_fallback

logger = logging.getLogger(__name__)

RawEnvelope = Union[bytes, bytearray, str, None]

KEY_FIELD = "ID"


def as_text(node: Any) -> str:
    """
    Read a JSON value as text.

    Strings are returned as is, booleans and numbers in their JSON
    form, and null or container values as an empty string.
    """
    if isinstance(node, str):
        return node
    if isinstance(node, bool):
        return "true" if node else "false"
    if isinstance(node, (int, float)):
        return json.dumps(node)
    return ""


class EventNormalizer:
    """
    Turns a raw change envelope into a canonical message and routing key.

    Stateless; a single instance may be shared by concurrent workers.
    """

    def __init__(self, key_field: str = KEY_FIELD):
        self.key_field = key_field

    def normalize(self, raw: RawEnvelope) -> NormalizedEvent:
        """
        Normalize one raw envelope.

        Args:
            raw: Envelope bytes or text as delivered by the source

        Returns:
            NormalizedEvent with the routing key, output body and message
        """
        text = self._to_text(raw)
        logger.debug("Raw change event: %s", text)

        try:
            envelope = json.loads(text)
        except (ValueError, RecursionError) as e:
            logger.warning(f"Undecodable change event, emitting as UNKNOWN: {e}")
            record_decode_fallback()
            envelope = None

        operation_type = self.classify(envelope)
        key = self.extract_key(envelope)
        message = CanonicalMessage(data=envelope, operation_type=operation_type)

        try:
            body = message.to_json()
        except (TypeError, ValueError, RecursionError) as e:
            logger.warning(f"Could not serialize canonical message, passing raw body through: {e}")
            record_serialization_fallback()
            body = text

        return NormalizedEvent(key=key, body=body, message=message)

    def classify(self, envelope: Any) -> OperationType:
        """Map the envelope's op code to an OperationType."""
        return OperationType.from_op_code(self._op_code(envelope))

    def extract_key(self, envelope: Any) -> Optional[str]:
        """
        Read the routing key from the row image.

        Deletes carry the row in ``before``; every other operation,
        including unknown ones, reads ``after``.
        """
        if envelope is None:
            return None

        image_field = "before" if self._op_code(envelope) == "d" else "after"
        image = envelope.get(image_field) if isinstance(envelope, dict) else None
        if not isinstance(image, dict):
            return None

        key_node = image.get(self.key_field)
        if key_node is None:
            return None
        return as_text(key_node)

    @staticmethod
    def _op_code(envelope: Any) -> str:
        if not isinstance(envelope, dict):
            return ""
        return as_text(envelope.get("op"))

    @staticmethod
    def _to_text(raw: RawEnvelope) -> str:
        if raw is None:
            return ""
        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw).decode("utf-8", errors="replace")
        return str(raw)


# Global normalizer instance
default_normalizer = EventNormalizer()


def normalize_change_event(raw: RawEnvelope) -> NormalizedEvent:
    """
    Convenience function to normalize a raw change envelope.

    Args:
        raw: Envelope bytes or text

    Returns:
        Normalized event
    """
    return default_normalizer.normalize(raw)

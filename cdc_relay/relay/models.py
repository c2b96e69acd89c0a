"""
Data types passed between the normalizer and the publisher.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class OperationType(str, Enum):
    """High-level change operation derived from the Debezium op code."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    READ = "READ"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_op_code(cls, op: str) -> "OperationType":
        """Map a Debezium op code; anything unrecognized is UNKNOWN."""
        return _OP_CODES.get(op, cls.UNKNOWN)


_OP_CODES = {
    "c": OperationType.CREATE,
    "u": OperationType.UPDATE,
    "d": OperationType.DELETE,
    "r": OperationType.READ,
}


@dataclass(frozen=True)
class CanonicalMessage:
    """
    Normalized change event written to the output topic.

    ``data`` holds the parsed Debezium envelope as a tree so the inner
    JSON is encoded exactly once.
    """
    data: Any
    operation_type: OperationType

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "operationType": self.operation_type.value}

    def to_json(self) -> str:
        """
        Serialize to compact JSON.

        Raises:
            ValueError: if ``data`` holds NaN or Infinity, or text that
                cannot be encoded as UTF-8 (lone surrogates)
            TypeError: if ``data`` is not JSON-serializable
        """
        body = json.dumps(
            self.to_dict(),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
        body.encode("utf-8")
        return body


@dataclass(frozen=True)
class NormalizedEvent:
    """Result of normalizing one raw envelope."""
    key: Optional[str]
    body: str
    message: CanonicalMessage

    @property
    def operation_type(self) -> OperationType:
        return self.message.operation_type


ERROR_CLASS_HEADER = "x-error-class"
ERROR_MESSAGE_HEADER = "x-error-message"
ORIGINAL_TOPIC_HEADER = "x-original-topic"


@dataclass(frozen=True)
class DeadLetterRecord:
    """A canonical body whose publish failed, annotated with the failure."""
    body: str
    error_class: str
    error_message: str
    original_topic: str

    def headers(self) -> List[Tuple[str, bytes]]:
        """Kafka headers carrying the failure annotations."""
        return [
            (ERROR_CLASS_HEADER, self.error_class.encode("utf-8")),
            (ERROR_MESSAGE_HEADER, self.error_message.encode("utf-8")),
            (ORIGINAL_TOPIC_HEADER, self.original_topic.encode("utf-8")),
        ]

"""
Loom ZeroMQ Message Protocol.

Defines message types, error codes, and serialization for ZeroMQ communication
between a Loom comm server and its clients.

::: This is-in-layer Protocol-Layer.
::: This is-in-component Message-Protocol.
::: This depends-on msgpack.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional
import json
import time
import uuid

import msgpack


# =============================================================================
# Error Codes (JSON-RPC 2.0 compatible)
# =============================================================================

PARSE_ERROR = -32700       # Invalid message format
INVALID_REQUEST = -32600   # Not a valid request
METHOD_NOT_FOUND = -32601  # Protocol method does not exist
INVALID_PARAMS = -32602    # Invalid method parameters
INTERNAL_ERROR = -32603    # Internal server error

# Application-specific error codes (-32000 to -32099)
TIMEOUT_ERROR = -32000        # Request timed out
CONNECTION_ERROR = -32001     # Connection lost
SERVICE_UNAVAILABLE = -32010  # Services not exposed yet
SERVICE_NOT_FOUND = -32011    # Unknown service name
REMOTE_NOT_FOUND = -32012     # Unknown method/signal/property on a service
MIDDLEWARE_REJECTED = -32013  # Inbound middleware stopped the request


ERROR_MESSAGES = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
    TIMEOUT_ERROR: "Request timeout",
    CONNECTION_ERROR: "Connection error",
    SERVICE_UNAVAILABLE: "Services not available yet",
    SERVICE_NOT_FOUND: "Service not found",
    REMOTE_NOT_FOUND: "Remote not found",
    MIDDLEWARE_REJECTED: "Rejected by middleware",
}


# =============================================================================
# Message Types
# =============================================================================

MessageType = Literal["request", "response", "event"]


@dataclass
class ErrorInfo:
    """Error information for failed requests.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    ::: This is serializable.
    """

    code: int
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_code(cls, code: int, details: Optional[Dict[str, Any]] = None) -> "ErrorInfo":
        """Create error from error code."""
        return cls(
            code=code,
            message=ERROR_MESSAGES.get(code, "Unknown error"),
            details=details
        )

    @classmethod
    def from_exception(cls, exc: BaseException, code: int = INTERNAL_ERROR) -> "ErrorInfo":
        """Create error from exception."""
        return cls(
            code=code,
            message=str(exc),
            details={"type": type(exc).__name__}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorInfo":
        return cls(
            code=data["code"],
            message=data["message"],
            details=data.get("details")
        )


@dataclass
class LoomMessage:
    """Message format for the Loom ZeroMQ protocol.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    ::: This is serializable.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    type: MessageType = "request"
    method: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[ErrorInfo] = None

    # Metadata fields
    timestamp: Optional[float] = None
    client_id: Optional[str] = None

    @classmethod
    def request(cls, method: str, params: Optional[Dict[str, Any]] = None,
                client_id: Optional[str] = None) -> "LoomMessage":
        """Create a request message."""
        return cls(
            type="request",
            method=method,
            params=params or {},
            timestamp=time.time(),
            client_id=client_id
        )

    @classmethod
    def response(cls, request_id: str, result: Any = None,
                 error: Optional[ErrorInfo] = None) -> "LoomMessage":
        """Create a response message."""
        return cls(
            id=request_id,
            type="response",
            result=result,
            error=error,
            timestamp=time.time()
        )

    @classmethod
    def event(cls, method: str, data: Dict[str, Any]) -> "LoomMessage":
        """Create an event message for PUB/SUB."""
        return cls(
            type="event",
            method=method,
            params=data,
            timestamp=time.time()
        )

    def is_success(self) -> bool:
        """Check if response was successful."""
        return self.type == "response" and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "method": self.method,
            "params": self.params,
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
            "timestamp": self.timestamp,
            "client_id": self.client_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoomMessage":
        error_data = data.get("error")
        error = ErrorInfo.from_dict(error_data) if error_data else None

        return cls(
            id=data.get("id", str(uuid.uuid4())),
            type=data.get("type", "request"),
            method=data.get("method", ""),
            params=data.get("params") or {},
            result=data.get("result"),
            error=error,
            timestamp=data.get("timestamp"),
            client_id=data.get("client_id")
        )


# =============================================================================
# Serialization Helpers
# =============================================================================

def serialize(message: LoomMessage) -> bytes:
    """Serialize message to bytes using msgpack."""
    return msgpack.packb(message.to_dict(), use_bin_type=True)


def deserialize(data: bytes) -> LoomMessage:
    """Deserialize bytes to message using msgpack."""
    unpacked = msgpack.unpackb(data, raw=False)
    if not isinstance(unpacked, dict):
        raise ValueError(f"Expected a message map, got {type(unpacked).__name__}")
    return LoomMessage.from_dict(unpacked)


def serialize_json(message: LoomMessage) -> str:
    """Serialize message to JSON string (for debugging/logging)."""
    return json.dumps(message.to_dict(), default=str)


# =============================================================================
# Event Topics
# =============================================================================

BROADCAST_TOPIC = "*"


def topic_for(client_id: Optional[str]) -> bytes:
    """PUB/SUB topic for a target client; None addresses every client.

    Topics end with a separator so a subscription for one client id never
    prefix-matches a longer id.
    """
    return f"{client_id or BROADCAST_TOPIC}|".encode("utf-8")


# =============================================================================
# Method Constants
# =============================================================================

METHOD_CONNECT = "connect"
METHOD_DISCONNECT = "disconnect"
METHOD_DESCRIBE = "describe"
METHOD_CALL = "call"
METHOD_FIRE = "fire"
METHOD_GET_PROPERTY = "get_property"

EVENT_SIGNAL = "signal"
EVENT_PROPERTY = "property"


__all__ = [
    # Error codes
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "TIMEOUT_ERROR",
    "CONNECTION_ERROR",
    "SERVICE_UNAVAILABLE",
    "SERVICE_NOT_FOUND",
    "REMOTE_NOT_FOUND",
    "MIDDLEWARE_REJECTED",
    "ERROR_MESSAGES",
    # Message types
    "MessageType",
    "ErrorInfo",
    "LoomMessage",
    # Serialization
    "serialize",
    "deserialize",
    "serialize_json",
    # Topics
    "BROADCAST_TOPIC",
    "topic_for",
    # Method constants
    "METHOD_CONNECT",
    "METHOD_DISCONNECT",
    "METHOD_DESCRIBE",
    "METHOD_CALL",
    "METHOD_FIRE",
    "METHOD_GET_PROPERTY",
    "EVENT_SIGNAL",
    "EVENT_PROPERTY",
]

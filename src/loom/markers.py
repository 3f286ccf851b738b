"""
Client Surface Markers.

Placeholders stored in a service's client surface at declaration time. The
runtime replaces them with bound remotes when it starts.

::: This is-in-layer Core-Layer.
::: This is-in-component Marker-System.
"""

from dataclasses import dataclass
from typing import Any


class SignalMarker:
    """Sentinel that becomes a RemoteSignal at bind time.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    ::: This has-singleton-scope.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SIGNAL_MARKER"

    def __reduce__(self):
        return (SignalMarker, ())


SIGNAL_MARKER = SignalMarker()


@dataclass(frozen=True, eq=False)
class PropertyMarker:
    """Placeholder that becomes a RemoteProperty seeded with ``initial_value``.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    initial_value: Any = None

    def __repr__(self) -> str:
        return f"PROPERTY_MARKER({self.initial_value!r})"


def create_signal() -> SignalMarker:
    """Mark a client surface key to become a RemoteSignal on start.

    Example:
        ChatService = create_service({
            "name": "ChatService",
            "client": {"message_posted": create_signal()},
        })
    """
    return SIGNAL_MARKER


def create_property(initial_value: Any = None) -> PropertyMarker:
    """Mark a client surface key to become a RemoteProperty on start.

    Args:
        initial_value: Value the property holds once bound

    Returns:
        A new PropertyMarker; every call yields an independent marker
    """
    return PropertyMarker(initial_value)


def is_signal_marker(value: Any) -> bool:
    return value is SIGNAL_MARKER


def is_property_marker(value: Any) -> bool:
    return isinstance(value, PropertyMarker)


__all__ = [
    "SignalMarker",
    "PropertyMarker",
    "SIGNAL_MARKER",
    "create_signal",
    "create_property",
    "is_signal_marker",
    "is_property_marker",
]

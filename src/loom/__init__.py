"""
Loom - service framework for asyncio servers.

Services declare a client surface of methods, signals and properties; the
runtime binds them to remotes and starts services in two ordered phases.

Module-level helpers act on a process-wide default Runtime. Applications
that want explicit wiring construct their own Runtime instead.
"""

from typing import Any, Optional

from .exceptions import (
    LoomError,
    ServiceValidationError,
    DuplicateServiceError,
    NotStartedError,
    ServiceNotFoundError,
    AlreadyStartedError,
    InitPhaseError,
    StartupAbortedError,
    CommError,
    MiddlewareRejected,
)
from .lifecycle import LifecycleState, StartupOptions
from .markers import SIGNAL_MARKER, PropertyMarker, SignalMarker, create_property, create_signal
from .runtime import Runtime, get_runtime, reset_runtime
from .service import ClientSurface, Service

__version__ = "0.1.0"


def create_service(definition: Any) -> Service:
    """Register a service with the default runtime."""
    return get_runtime().create_service(definition)


def get_service(name: str) -> Service:
    """Get a started service from the default runtime."""
    return get_runtime().get_service(name)


async def start(options: Optional[Any] = None) -> None:
    """Start the default runtime."""
    await get_runtime().start(options)


async def on_started_complete() -> None:
    """Wait until the default runtime has started."""
    await get_runtime().on_started_complete()


__all__ = [
    # Runtime
    "Runtime",
    "get_runtime",
    "reset_runtime",
    "create_service",
    "get_service",
    "start",
    "on_started_complete",
    # Model
    "Service",
    "ClientSurface",
    "LifecycleState",
    "StartupOptions",
    # Markers
    "SIGNAL_MARKER",
    "SignalMarker",
    "PropertyMarker",
    "create_signal",
    "create_property",
    # Errors
    "LoomError",
    "ServiceValidationError",
    "DuplicateServiceError",
    "NotStartedError",
    "ServiceNotFoundError",
    "AlreadyStartedError",
    "InitPhaseError",
    "StartupAbortedError",
    "CommError",
    "MiddlewareRejected",
]

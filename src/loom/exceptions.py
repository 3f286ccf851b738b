"""
Loom Exception Hierarchy

Contains all exception classes raised by the service runtime and the
comm layer.
"""

from typing import Dict, Optional


class LoomError(Exception):
    """
    Base exception for all Loom operations.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class ServiceValidationError(LoomError, ValueError):
    """
    Raised when a service definition is malformed.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.

    Covers definitions that are not a Service or a mapping, names that are
    not a non-empty string, client surfaces that are not mappings and
    lifecycle hooks that are not callable.
    """
    pass


class DuplicateServiceError(LoomError):
    """
    Raised when a service name is registered twice.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, service_name: str):
        super().__init__(f'Service "{service_name}" already exists')
        self.service_name = service_name


class NotStartedError(LoomError):
    """
    Raised when services are accessed before the runtime has started.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class ServiceNotFoundError(LoomError, LookupError):
    """
    Raised when no service is registered under the requested name.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, service_name: str):
        super().__init__(f'Could not find service "{service_name}"')
        self.service_name = service_name


class AlreadyStartedError(LoomError):
    """
    Raised when start() is invoked more than once, or when a service is
    declared after start() has been invoked.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class InitPhaseError(LoomError):
    """
    Raised when one or more on_init hooks fail.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.

    Every hook of the init phase runs to completion before this is raised.
    ``failures`` maps the failing service names to the exception each hook
    raised.
    """

    def __init__(self, failures: Dict[str, BaseException]):
        names = ", ".join(sorted(failures))
        super().__init__(f"on_init failed for service(s): {names}")
        self.failures = failures

    @property
    def service_names(self) -> list[str]:
        """Sorted names of the services whose on_init failed."""
        return sorted(self.failures)


class StartupAbortedError(LoomError):
    """
    Raised to startup waiters when start() was interrupted.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.

    Covers cancellation and other BaseExceptions that are not ordinary
    errors; the interrupting exception is kept as ``__cause__``.
    """
    pass


class CommError(LoomError):
    """
    Base exception for comm layer failures.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class MiddlewareRejected(CommError):
    """
    Raised when a middleware chain stops an inbound call.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, name: str, client_id: Optional[str] = None):
        super().__init__(f'Middleware rejected "{name}" for client {client_id!r}')
        self.name = name
        self.client_id = client_id


__all__ = [
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

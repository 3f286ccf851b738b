"""
Service Registry.

Validates service definitions, enforces unique names and stores the
canonical Service objects.

::: This is-in-layer Core-Layer.
::: This is-in-component Service-Registry.
::: This depends-on loom.comm.hub.
"""

from typing import Any, Dict, Iterator, Mapping

from .comm.hub import CommHub
from .exceptions import DuplicateServiceError, ServiceNotFoundError, ServiceValidationError
from .logging_config import configure_logger_for_trace
from .service import ClientSurface, Service, describe_service

logger = configure_logger_for_trace(__name__)


class ServiceRegistry:
    """Name to Service map backed by a CommHub for bindings.

    ::: This is-in-layer Core-Layer.
    ::: This is a registry.
    ::: This is stateful.

    The registry does not know about the lifecycle; the Runtime closes the
    declaration window when it starts.
    """

    def __init__(self, hub: CommHub):
        self.hub = hub
        self._services: Dict[str, Service] = {}

    def create_service(self, definition: Any) -> Service:
        """Validate, register and return a service.

        Args:
            definition: A Service instance or a mapping with at least ``name``

        Returns:
            The canonical Service

        Raises:
            ServiceValidationError: Malformed definition
            DuplicateServiceError: Name already registered
        """
        service = self._coerce(definition)
        name = service.name

        if not isinstance(name, str):
            raise ServiceValidationError(f"Service.name must be a string; got {type(name).__name__}")
        if not name:
            raise ServiceValidationError("Service.name must be a non-empty string")
        if name in self._services:
            raise DuplicateServiceError(name)

        service.client = self._adopt_client(service)
        service.detect_hooks()
        service.comm = self.hub.new_binding(name)

        self._services[name] = service
        logger.debug(f"Registered service {describe_service(service)}")
        return service

    @staticmethod
    def _coerce(definition: Any) -> Service:
        if isinstance(definition, Service):
            return definition
        if isinstance(definition, Mapping):
            return Service.from_mapping(definition)
        raise ServiceValidationError(
            f"Service must be a Service or a mapping; got {type(definition).__name__}"
        )

    @staticmethod
    def _adopt_client(service: Service) -> ClientSurface:
        client = service.client
        if client is None:
            return ClientSurface(server=service)
        if isinstance(client, ClientSurface):
            if client.server is not service:
                client.server = service
            return client
        if isinstance(client, Mapping):
            # Copy so class-level definitions are never mutated by binding
            return ClientSurface(client, server=service)
        raise ServiceValidationError(
            f'"{service.name}".client must be a mapping; got {type(client).__name__}'
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, name: str) -> Service:
        """Look up a service by name.

        Raises:
            ServiceValidationError: name is not a string
            ServiceNotFoundError: No such service
        """
        if not isinstance(name, str):
            raise ServiceValidationError(f"Service name must be a string; got {type(name).__name__}")
        try:
            return self._services[name]
        except KeyError:
            raise ServiceNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __iter__(self) -> Iterator[Service]:
        return iter(list(self._services.values()))

    def __len__(self) -> int:
        return len(self._services)

    def as_mapping(self) -> Mapping[str, Service]:
        return dict(self._services)

    @property
    def names(self) -> list[str]:
        return sorted(self._services)


__all__ = ["ServiceRegistry"]

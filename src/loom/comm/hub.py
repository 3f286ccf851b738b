"""
Loom Comm Hub.

The hub owns every ServiceBinding, tracks connected clients and routes
protocol requests to the remotes of exposed services. It knows nothing about
sockets: a transport feeds it LoomMessages and installs an event publisher.

::: This is-in-layer Service-Layer.
::: This is-in-component Comm-Adapter.
::: This depends-on loom.comm.protocol.
"""

from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Set

from ..exceptions import CommError, MiddlewareRejected
from ..logging_config import configure_logger_for_trace
from .binding import ServiceBinding
from .protocol import (
    LoomMessage,
    ErrorInfo,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    MIDDLEWARE_REJECTED,
    REMOTE_NOT_FOUND,
    SERVICE_NOT_FOUND,
    SERVICE_UNAVAILABLE,
    METHOD_CALL,
    METHOD_CONNECT,
    METHOD_DESCRIBE,
    METHOD_DISCONNECT,
    METHOD_FIRE,
    METHOD_GET_PROPERTY,
)
from .remotes import RemoteMethod, RemoteProperty, RemoteSignal

logger = configure_logger_for_trace(__name__)

EventPublisher = Callable[[Optional[str], LoomMessage], None]


class RequestError(CommError):
    """Failure that maps to a protocol error code.

    ::: This is-in-layer Service-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, code: int, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.info = ErrorInfo(code=code, message=message, details=details)


class CommHub:
    """Registry of service bindings and request router.

    ::: This is-in-layer Service-Layer.
    ::: This is a registry.
    ::: This is stateful.

    The hub:
    1. Allocates one ServiceBinding per service name
    2. Refuses client traffic until ``expose()`` is called
    3. Routes call/fire/get_property requests to the matching remote
    4. Publishes signal fires and property changes through ``publisher``
    """

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self._bindings: Dict[str, ServiceBinding] = {}
        self._clients: Set[str] = set()
        self._exposed = False
        self.publisher = publisher
        self._methods: Dict[str, Callable[[LoomMessage], Awaitable[Any]]] = {
            METHOD_CONNECT: self._handle_connect,
            METHOD_DISCONNECT: self._handle_disconnect,
            METHOD_DESCRIBE: self._handle_describe,
            METHOD_CALL: self._handle_call,
            METHOD_FIRE: self._handle_fire,
            METHOD_GET_PROPERTY: self._handle_get_property,
        }

    # =========================================================================
    # Bindings
    # =========================================================================

    def new_binding(self, service_name: str) -> ServiceBinding:
        """Allocate an unbound ServiceBinding for a service."""
        if service_name in self._bindings:
            raise CommError(f'A binding for "{service_name}" already exists')
        binding = ServiceBinding(self, service_name)
        self._bindings[service_name] = binding
        return binding

    def get_binding(self, service_name: str) -> Optional[ServiceBinding]:
        return self._bindings.get(service_name)

    @property
    def service_names(self) -> list[str]:
        return sorted(self._bindings)

    def expose(self) -> None:
        """Start accepting client traffic."""
        self._exposed = True
        logger.info(f"Comm hub exposed {len(self._bindings)} service(s)")

    @property
    def exposed(self) -> bool:
        return self._exposed

    # =========================================================================
    # Clients
    # =========================================================================

    @property
    def clients(self) -> FrozenSet[str]:
        return frozenset(self._clients)

    def add_client(self, client_id: str) -> None:
        self._clients.add(client_id)

    def remove_client(self, client_id: str) -> None:
        self._clients.discard(client_id)
        for binding in self._bindings.values():
            binding.forget_client(client_id)

    # =========================================================================
    # Events
    # =========================================================================

    def publish(self, client_id: Optional[str], event_type: str, data: Dict[str, Any]) -> None:
        """Publish an event to one client, or to every client when client_id is None."""
        if self.publisher is None:
            logger.debug(f"No publisher installed, dropping {event_type} event for {client_id or '*'}")
            return
        self.publisher(client_id, LoomMessage.event(event_type, dict(data)))

    # =========================================================================
    # Requests
    # =========================================================================

    async def dispatch(self, message: LoomMessage) -> LoomMessage:
        """Process a request message and return the response.

        Args:
            message: The incoming request message

        Returns:
            Response message with result or error
        """
        if message.type != "request":
            return LoomMessage.response(
                message.id,
                error=ErrorInfo.from_code(INVALID_REQUEST, details={"type": message.type})
            )

        handler = self._methods.get(message.method)
        if handler is None:
            return LoomMessage.response(
                message.id,
                error=ErrorInfo(
                    code=METHOD_NOT_FOUND,
                    message=f"Method '{message.method}' not found",
                    details={"method": message.method}
                )
            )

        if not self._exposed:
            return LoomMessage.response(message.id, error=ErrorInfo.from_code(SERVICE_UNAVAILABLE))

        try:
            result = await handler(message)
            return LoomMessage.response(message.id, result=result)
        except RequestError as e:
            return LoomMessage.response(message.id, error=e.info)
        except MiddlewareRejected as e:
            return LoomMessage.response(
                message.id,
                error=ErrorInfo(MIDDLEWARE_REJECTED, str(e), details={"remote": e.name})
            )
        except Exception as e:
            logger.exception(f"Error handling {message.method} request: {e}")
            return LoomMessage.response(message.id, error=ErrorInfo.from_exception(e, INTERNAL_ERROR))

    def _resolve(self, message: LoomMessage, kind: type):
        params = message.params
        service_name = params.get("service")
        name = params.get("name")
        if not isinstance(service_name, str) or not isinstance(name, str):
            raise RequestError(INVALID_PARAMS, "'service' and 'name' must be strings",
                               details={"params": params})

        binding = self._bindings.get(service_name)
        if binding is None:
            raise RequestError(SERVICE_NOT_FOUND, f"Service '{service_name}' not found",
                               details={"service": service_name})

        remote = binding.get_remote(name, kind)
        if remote is None:
            raise RequestError(REMOTE_NOT_FOUND, f"No {kind.kind} '{service_name}.{name}'",
                               details={"service": service_name, "name": name})
        return remote

    @staticmethod
    def _args(message: LoomMessage) -> list:
        args = message.params.get("args", [])
        if not isinstance(args, (list, tuple)):
            raise RequestError(INVALID_PARAMS, "'args' must be a list", details={"args": args})
        return list(args)

    def _describe_all(self, client_id: Optional[str]) -> Dict[str, Any]:
        return {name: binding.describe(client_id) for name, binding in sorted(self._bindings.items())}

    async def _handle_connect(self, message: LoomMessage) -> Dict[str, Any]:
        if not message.client_id:
            raise RequestError(INVALID_PARAMS, "connect requires a client_id")
        self.add_client(message.client_id)
        logger.debug(f"Client {message.client_id} connected")
        return {"client_id": message.client_id, "services": self._describe_all(message.client_id)}

    async def _handle_disconnect(self, message: LoomMessage) -> Dict[str, Any]:
        if message.client_id:
            self.remove_client(message.client_id)
            logger.debug(f"Client {message.client_id} disconnected")
        return {"client_id": message.client_id}

    async def _handle_describe(self, message: LoomMessage) -> Dict[str, Any]:
        return {"services": self._describe_all(message.client_id)}

    async def _handle_call(self, message: LoomMessage) -> Dict[str, Any]:
        method: RemoteMethod = self._resolve(message, RemoteMethod)
        value = await method.invoke(message.client_id, self._args(message))
        return {"value": value}

    async def _handle_fire(self, message: LoomMessage) -> Dict[str, Any]:
        signal: RemoteSignal = self._resolve(message, RemoteSignal)
        delivered = await signal.receive(message.client_id, self._args(message))
        return {"delivered": delivered}

    async def _handle_get_property(self, message: LoomMessage) -> Dict[str, Any]:
        prop: RemoteProperty = self._resolve(message, RemoteProperty)
        return {"value": prop.read(message.client_id)}


__all__ = [
    "CommHub",
    "EventPublisher",
    "RequestError",
]

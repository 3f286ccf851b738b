"""
Bound Remotes.

Concrete client-reachable objects produced by a ServiceBinding: methods
clients can call, signals pushed between server and clients, and properties
replicated to clients.

::: This is-in-layer Service-Layer.
::: This is-in-component Comm-Adapter.
"""

import inspect
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from ..exceptions import MiddlewareRejected
from .middleware import MiddlewareChain, run_middleware
from .protocol import EVENT_PROPERTY, EVENT_SIGNAL

if TYPE_CHECKING:
    from .binding import ServiceBinding


class Remote:
    """Base class for every bound client surface entry.

    ::: This is-in-layer Service-Layer.
    ::: This is a value-object.
    ::: This is stateful.

    The runtime never rebinds a Remote, so binding is idempotent.
    """

    kind = "remote"

    def __init__(
        self,
        binding: "ServiceBinding",
        name: str,
        inbound: MiddlewareChain = (),
        outbound: MiddlewareChain = (),
    ):
        self.binding = binding
        self.name = name
        self.inbound = tuple(inbound)
        self.outbound = tuple(outbound)

    @property
    def qualified_name(self) -> str:
        return f"{self.binding.service_name}.{self.name}"

    def _check_inbound(self, client_id: Optional[str], args: Tuple[Any, ...]) -> Tuple[Any, ...]:
        ok, args = run_middleware(self.inbound, client_id, args)
        if not ok:
            raise MiddlewareRejected(self.qualified_name, client_id)
        return args

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.qualified_name}>"


# =============================================================================
# Methods
# =============================================================================

class RemoteMethod(Remote):
    """A client-invokable method.

    ::: This is-in-layer Service-Layer.
    ::: This is a handler.
    ::: This is stateless.

    The handler is called as ``handler(client_id, *args)``. Calling the
    RemoteMethod directly from server code runs the handler without
    middleware.
    """

    kind = "method"

    def __init__(self, binding, name, handler: Callable[..., Any], inbound=(), outbound=()):
        super().__init__(binding, name, inbound, outbound)
        self.handler = handler

    def __call__(self, *args, **kwargs):
        return self.handler(*args, **kwargs)

    async def invoke(self, client_id: Optional[str], args: Iterable[Any] = ()) -> Any:
        """Handle a call arriving from a client.

        Inbound middleware filters the arguments, outbound middleware filters
        the return value. A stopped outbound chain yields None.

        Raises:
            MiddlewareRejected: Inbound middleware stopped the call
        """
        args = self._check_inbound(client_id, tuple(args))
        result = self.handler(client_id, *args)
        if inspect.isawaitable(result):
            result = await result
        ok, out = run_middleware(self.outbound, client_id, (result,))
        if not ok:
            return None
        return out[0] if len(out) == 1 else list(out)


# =============================================================================
# Signals
# =============================================================================

class Connection:
    """Handle returned by RemoteSignal.connect.

    ::: This is-in-layer Service-Layer.
    ::: This is a value-object.
    ::: This is stateful.
    """

    def __init__(self, signal: "RemoteSignal", handler: Callable[..., Any]):
        self._signal = signal
        self.handler = handler
        self.connected = True

    def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            self._signal._connections.remove(self)


class RemoteSignal(Remote):
    """A push channel between the server and its clients.

    ::: This is-in-layer Service-Layer.
    ::: This is a event-channel.
    ::: This is stateful.

    Server code fires to clients with ``fire``/``fire_all``/``fire_except``/
    ``fire_filter``/``fire_for``; each delivery passes the outbound middleware.
    Fires coming from clients pass the inbound middleware and reach every
    handler registered with ``connect``.
    """

    kind = "signal"

    def __init__(self, binding, name, inbound=(), outbound=()):
        super().__init__(binding, name, inbound, outbound)
        self._connections: List[Connection] = []

    def connect(self, handler: Callable[..., Any]) -> Connection:
        """Register ``handler(client_id, *args)`` for fires coming from clients."""
        if not callable(handler):
            raise TypeError(f"Signal handler must be callable; got {type(handler).__name__}")
        connection = Connection(self, handler)
        self._connections.append(connection)
        return connection

    def disconnect_all(self) -> None:
        for connection in list(self._connections):
            connection.disconnect()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def _deliver(self, client_id: Optional[str], args: Tuple[Any, ...]) -> bool:
        ok, args = run_middleware(self.outbound, client_id, args)
        if not ok:
            return False
        self.binding.publish(client_id, EVENT_SIGNAL, {
            "service": self.binding.service_name,
            "name": self.name,
            "args": list(args),
        })
        return True

    def fire(self, client_id: str, *args: Any) -> bool:
        """Fire to a single client. Returns False if outbound middleware stopped it."""
        return self._deliver(client_id, args)

    def fire_all(self, *args: Any) -> bool:
        """Fire to every client; outbound middleware runs once with client_id None."""
        return self._deliver(None, args)

    def fire_for(self, client_ids: Iterable[str], *args: Any) -> int:
        """Fire to the given clients; returns how many deliveries went out."""
        return sum(1 for client_id in client_ids if self._deliver(client_id, args))

    def fire_except(self, excluded: str, *args: Any) -> int:
        """Fire to every connected client except ``excluded``."""
        targets = [c for c in self.binding.clients if c != excluded]
        return self.fire_for(targets, *args)

    def fire_filter(self, predicate: Callable[..., bool], *args: Any) -> int:
        """Fire to every connected client for which ``predicate(client_id, *args)`` holds."""
        targets = [c for c in self.binding.clients if predicate(c, *args)]
        return self.fire_for(targets, *args)

    async def receive(self, client_id: Optional[str], args: Iterable[Any] = ()) -> int:
        """Handle a fire arriving from a client.

        Returns:
            Number of handlers invoked

        Raises:
            MiddlewareRejected: Inbound middleware stopped the fire
        """
        args = self._check_inbound(client_id, tuple(args))
        connections = list(self._connections)
        for connection in connections:
            result = connection.handler(client_id, *args)
            if inspect.isawaitable(result):
                await result
        return len(connections)


# =============================================================================
# Properties
# =============================================================================

class RemoteProperty(Remote):
    """A value replicated to clients, optionally overridden per client.

    ::: This is-in-layer Service-Layer.
    ::: This is a value-object.
    ::: This is stateful.
    """

    kind = "property"

    def __init__(self, binding, name, initial_value: Any = None, inbound=(), outbound=()):
        super().__init__(binding, name, inbound, outbound)
        self._value = initial_value
        self._per_client: Dict[str, Any] = {}

    def _replicate(self, client_id: Optional[str], value: Any) -> bool:
        ok, out = run_middleware(self.outbound, client_id, (value,))
        if not ok:
            return False
        self.binding.publish(client_id, EVENT_PROPERTY, {
            "service": self.binding.service_name,
            "name": self.name,
            "value": out[0] if len(out) == 1 else list(out),
        })
        return True

    def get(self) -> Any:
        """Top-level value, ignoring per-client overrides."""
        return self._value

    def get_for(self, client_id: str) -> Any:
        """Value as seen by ``client_id``."""
        return self._per_client.get(client_id, self._value)

    def has_override(self, client_id: str) -> bool:
        return client_id in self._per_client

    def set(self, value: Any) -> None:
        """Set the value for every client, dropping all per-client overrides."""
        self._value = value
        self._per_client.clear()
        self._replicate(None, value)

    def set_top(self, value: Any) -> None:
        """Set the top-level value, keeping per-client overrides in place."""
        self._value = value
        for client_id in self.binding.clients:
            if client_id not in self._per_client:
                self._replicate(client_id, value)

    def set_for(self, client_id: str, value: Any) -> None:
        """Override the value for one client."""
        self._per_client[client_id] = value
        self._replicate(client_id, value)

    def set_filter(self, predicate: Callable[[str, Any], bool], value: Any) -> None:
        """Override the value for every connected client matching ``predicate(client_id, value)``."""
        for client_id in self.binding.clients:
            if predicate(client_id, value):
                self.set_for(client_id, value)

    def clear_for(self, client_id: str) -> None:
        """Remove a client's override; the client sees the top-level value again."""
        self._per_client.pop(client_id, None)
        self._replicate(client_id, self._value)

    def forget_client(self, client_id: str) -> None:
        """Drop state kept for a disconnected client without replicating."""
        self._per_client.pop(client_id, None)

    def read(self, client_id: Optional[str]) -> Any:
        """Handle a read arriving from a client.

        Raises:
            MiddlewareRejected: Inbound middleware stopped the read, or
                outbound middleware withheld the value
        """
        self._check_inbound(client_id, ())
        ok, value = self.snapshot(client_id)
        if not ok:
            raise MiddlewareRejected(self.qualified_name, client_id)
        return value

    def snapshot(self, client_id: Optional[str]) -> Tuple[bool, Any]:
        """Value a client would receive, after outbound middleware."""
        value = self.get_for(client_id) if client_id else self._value
        ok, out = run_middleware(self.outbound, client_id, (value,))
        return ok, (out[0] if len(out) == 1 else list(out))


__all__ = [
    "Remote",
    "RemoteMethod",
    "RemoteSignal",
    "RemoteProperty",
    "Connection",
]

"""
Loom ZeroMQ Comm Client.

Client for a CommServer: calls remote methods, fires signals, reads
properties and listens for pushed events.

::: This is-in-layer Client-Layer.
::: This is-in-component ZeroMQ-Client.
::: This depends-on pyzmq.
"""

import asyncio
import inspect
import uuid
from typing import Any, Callable, Dict, Optional

import zmq
import zmq.asyncio

from ..config import CommConfig
from ..exceptions import CommError
from ..logging_config import configure_logger_for_trace
from .protocol import (
    LoomMessage,
    ErrorInfo,
    serialize,
    deserialize,
    topic_for,
    CONNECTION_ERROR,
    TIMEOUT_ERROR,
    METHOD_CALL,
    METHOD_CONNECT,
    METHOD_DESCRIBE,
    METHOD_DISCONNECT,
    METHOD_FIRE,
    METHOD_GET_PROPERTY,
)

logger = configure_logger_for_trace(__name__)

EventHandler = Callable[[LoomMessage], Any]


class RemoteCallError(CommError):
    """The server answered a request with an error.

    ::: This is-in-layer Core-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, message: str, error: Optional[ErrorInfo] = None):
        super().__init__(message)
        self.error = error

    @property
    def code(self) -> Optional[int]:
        return self.error.code if self.error else None


class CommTimeoutError(CommError):
    """Request timed out.

    ::: This is-in-layer Core-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    code = TIMEOUT_ERROR


class CommConnectionError(CommError):
    """Connection to server failed.

    ::: This is-in-layer Core-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    code = CONNECTION_ERROR


class CommClient:
    """Asyncio ZeroMQ client for a Loom comm server.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a client.
    ::: This is stateful.
    ::: This depends-on `zmq.asyncio.Context`.

    Usage:
        client = CommClient(request_endpoint="tcp://127.0.0.1:5570",
                            event_endpoint="tcp://127.0.0.1:5571")
        services = await client.connect()
        echoed = await client.call("EchoService", "say", "hello")
        client.listen(lambda event: print(event.params))
        ...
        await client.close()
    """

    def __init__(
        self,
        config: Optional[CommConfig] = None,
        request_endpoint: Optional[str] = None,
        event_endpoint: Optional[str] = None,
        client_id: Optional[str] = None,
    ):
        """Initialize comm client.

        Args:
            config: Transport configuration
            request_endpoint: Explicit request endpoint (overrides config)
            event_endpoint: Explicit event endpoint (overrides config)
            client_id: Identity announced to the server; random if omitted
        """
        self.config = config or CommConfig()
        self.request_endpoint = request_endpoint or self.config.request_endpoint
        self.event_endpoint = event_endpoint or self.config.event_endpoint
        self.client_id = client_id or str(uuid.uuid4())[:8]

        self._context: Optional[zmq.asyncio.Context] = None
        self._socket: Optional[zmq.asyncio.Socket] = None
        self._sub_socket: Optional[zmq.asyncio.Socket] = None
        self._lock = asyncio.Lock()
        self._listener: Optional[asyncio.Task] = None
        self._connected = False

    @classmethod
    def for_server(cls, server, client_id: Optional[str] = None) -> "CommClient":
        """Create a client pointed at a bound CommServer in the same process."""
        return cls(
            config=server.config,
            request_endpoint=server.request_endpoint,
            event_endpoint=server.event_endpoint,
            client_id=client_id,
        )

    # =========================================================================
    # Connection
    # =========================================================================

    def _ensure_socket(self) -> None:
        if self._socket is not None:
            return
        try:
            if self._context is None:
                self._context = zmq.asyncio.Context()
            self._socket = self._context.socket(zmq.DEALER)
            self._socket.setsockopt(zmq.LINGER, 0)
            self._socket.connect(self.request_endpoint)
        except zmq.ZMQError as e:
            self._socket = None
            raise CommConnectionError(f"Failed to connect: {e}")
        logger.debug(f"Connected to {self.request_endpoint}")

    async def connect(self) -> Dict[str, Any]:
        """Announce this client to the server.

        Returns:
            Manifest of the exposed services keyed by service name
        """
        result = await self._send_request(METHOD_CONNECT, {})
        self._connected = True
        return result.get("services", {})

    async def _send_request(
        self,
        method: str,
        params: Dict[str, Any],
        timeout_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send request and wait for its response.

        Raises:
            CommTimeoutError: Request timed out
            CommConnectionError: Connection failed
            RemoteCallError: Server returned error
        """
        effective_timeout = timeout_ms if timeout_ms is not None else self.config.timeout_ms
        request = LoomMessage.request(method, params, client_id=self.client_id)

        async with self._lock:
            self._ensure_socket()
            try:
                response = await asyncio.wait_for(
                    self._exchange(request), effective_timeout / 1000
                )
            except asyncio.TimeoutError:
                self._reset_socket()
                raise CommTimeoutError(f"Request timed out after {effective_timeout}ms")
            except zmq.ZMQError as e:
                self._reset_socket()
                raise CommConnectionError(f"ZMQ error: {e}")

        if response.error:
            raise RemoteCallError(response.error.message, error=response.error)
        return response.result or {}

    async def _exchange(self, request: LoomMessage) -> LoomMessage:
        await self._socket.send(serialize(request))
        return await self._receive_response(request.id)

    async def _receive_response(self, request_id: str) -> LoomMessage:
        while True:
            response = deserialize(await self._socket.recv())
            if response.id == request_id:
                return response
            logger.debug(f"Discarding stale response {response.id}")

    def _reset_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    # =========================================================================
    # Remote Operations
    # =========================================================================

    async def describe(self) -> Dict[str, Any]:
        result = await self._send_request(METHOD_DESCRIBE, {})
        return result.get("services", {})

    async def call(self, service: str, name: str, *args: Any, timeout_ms: Optional[int] = None) -> Any:
        """Invoke a remote method and return its value."""
        result = await self._send_request(
            METHOD_CALL,
            {"service": service, "name": name, "args": list(args)},
            timeout_ms=timeout_ms,
        )
        return result.get("value")

    async def fire(self, service: str, name: str, *args: Any) -> int:
        """Fire a signal towards the server; returns the number of handlers reached."""
        result = await self._send_request(
            METHOD_FIRE, {"service": service, "name": name, "args": list(args)}
        )
        return result.get("delivered", 0)

    async def get_property(self, service: str, name: str) -> Any:
        result = await self._send_request(
            METHOD_GET_PROPERTY, {"service": service, "name": name}
        )
        return result.get("value")

    # =========================================================================
    # Events
    # =========================================================================

    def listen(self, handler: EventHandler) -> asyncio.Task:
        """Subscribe to events for this client and broadcasts.

        ``handler`` receives every event LoomMessage; coroutine handlers are
        awaited before the next event is read.
        """
        if self._listener is not None:
            raise CommError("Client is already listening")
        if self._context is None:
            self._context = zmq.asyncio.Context()
        self._sub_socket = self._context.socket(zmq.SUB)
        self._sub_socket.setsockopt(zmq.LINGER, 0)
        self._sub_socket.setsockopt(zmq.SUBSCRIBE, topic_for(None))
        self._sub_socket.setsockopt(zmq.SUBSCRIBE, topic_for(self.client_id))
        self._sub_socket.connect(self.event_endpoint)
        self._listener = asyncio.create_task(self._listen(handler))
        return self._listener

    async def _listen(self, handler: EventHandler) -> None:
        while True:
            _topic, payload = await self._sub_socket.recv_multipart()
            try:
                event = deserialize(payload)
            except ValueError as e:
                logger.warning(f"Dropping malformed event: {e}")
                continue
            result = handler(event)
            if inspect.isawaitable(result):
                await result

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Disconnect from the server and release sockets."""
        if self._connected:
            self._connected = False
            try:
                await self._send_request(METHOD_DISCONNECT, {}, timeout_ms=1000)
            except CommError as e:
                logger.debug(f"Disconnect notice not delivered: {e}")

        if self._listener is not None:
            self._listener.cancel()
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None

        self._reset_socket()
        if self._sub_socket is not None:
            self._sub_socket.close()
            self._sub_socket = None
        if self._context is not None:
            self._context.term()
            self._context = None

    async def __aenter__(self) -> "CommClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "CommClient",
    "RemoteCallError",
    "CommTimeoutError",
    "CommConnectionError",
]

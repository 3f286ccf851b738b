"""
Loom ZeroMQ Comm Server.

Serves a CommHub over ZeroMQ: a ROUTER socket for client requests and a PUB
socket for signal fires and property replication.

::: This is-in-layer Server-Layer.
::: This is-in-component ZeroMQ-Server.
::: This depends-on pyzmq.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Set

import zmq
import zmq.asyncio

from ..config import CommConfig
from ..logging_config import configure_logger_for_trace
from .hub import CommHub
from .protocol import (
    LoomMessage,
    ErrorInfo,
    serialize,
    deserialize,
    topic_for,
    PARSE_ERROR,
)

logger = configure_logger_for_trace(__name__)


class CommServer:
    """ZeroMQ transport for a CommHub.

    ::: This is-in-layer Presentation-Layer.
    ::: This is a service.
    ::: This is stateful.

    The server:
    1. Binds a ROUTER socket for requests from DEALER clients
    2. Binds a PUB socket for events, one topic per client plus broadcast
    3. Hands every request to the hub on its own task
    4. Drains hub events onto the PUB socket
    """

    def __init__(self, hub: CommHub, config: Optional[CommConfig] = None):
        """Initialize comm server.

        Args:
            hub: Hub whose bindings are served
            config: Transport configuration. If None, read from environment.
        """
        self.hub = hub
        self.config = config or CommConfig()
        self._running = False
        self._serving = False
        self._start_time = time.time()

        # ZeroMQ context and sockets
        self._context: Optional[zmq.asyncio.Context] = None
        self._request_socket: Optional[zmq.asyncio.Socket] = None
        self._event_socket: Optional[zmq.asyncio.Socket] = None

        # Actual bound ports (differ from config when using dynamic ports)
        self._actual_request_port: int = self.config.request_port
        self._actual_event_port: int = self.config.event_port

        self._events: Optional[asyncio.Queue] = None
        self._tasks: Set[asyncio.Task] = set()

        self._stats = {
            "requests_handled": 0,
            "errors": 0,
            "events_published": 0,
            "total_time_ms": 0.0,
        }

    # =========================================================================
    # Setup
    # =========================================================================

    def _bind_socket(self, socket: zmq.asyncio.Socket, port: int, endpoint: str) -> int:
        if port == 0 and not endpoint.startswith("ipc://"):
            socket.bind("tcp://*:0")
            bound = socket.getsockopt_string(zmq.LAST_ENDPOINT)
            return int(bound.rsplit(":", 1)[-1])
        socket.bind(endpoint)
        return port

    def bind(self) -> None:
        """Create and bind the sockets and install the hub publisher."""
        if self._context is not None:
            return

        for warning in self.config.validate():
            logger.warning(warning)

        logger.info("Initializing ZeroMQ sockets...")
        self._context = zmq.asyncio.Context()

        self._request_socket = self._context.socket(zmq.ROUTER)
        self._request_socket.setsockopt(zmq.LINGER, 0)
        self._actual_request_port = self._bind_socket(
            self._request_socket, self.config.request_port, self.config.request_bind_endpoint
        )

        self._event_socket = self._context.socket(zmq.PUB)
        self._event_socket.setsockopt(zmq.LINGER, 0)
        self._actual_event_port = self._bind_socket(
            self._event_socket, self.config.event_port, self.config.event_bind_endpoint
        )

        self._events = asyncio.Queue()
        self.hub.publisher = self._enqueue_event

        logger.info(f"Request socket bound for {self.request_endpoint}")
        logger.info(f"Event socket bound for {self.event_endpoint}")

    # =========================================================================
    # Events
    # =========================================================================

    def _enqueue_event(self, client_id: Optional[str], message: LoomMessage) -> None:
        if self._events is not None:
            self._events.put_nowait((client_id, message))

    async def _drain_events(self) -> None:
        while True:
            client_id, message = await self._events.get()
            try:
                await self._event_socket.send_multipart([topic_for(client_id), serialize(message)])
                self._stats["events_published"] += 1
            except zmq.ZMQError as e:
                logger.error(f"Failed to publish {message.method} event: {e}")

    # =========================================================================
    # Requests
    # =========================================================================

    async def handle_request(self, raw_message: bytes) -> bytes:
        """Handle an incoming request and return the serialized response.

        Args:
            raw_message: Raw message bytes

        Returns:
            Serialized response message
        """
        start_time = time.time()

        try:
            request = deserialize(raw_message)
        except Exception as e:
            logger.error(f"Failed to parse request: {e}")
            self._stats["errors"] += 1
            response = LoomMessage.response(
                "",
                error=ErrorInfo(PARSE_ERROR, f"Failed to parse request: {e}")
            )
            return serialize(response)

        if self.config.log_requests:
            logger.debug(f"Request from {request.client_id}: {request.method} {request.params}")

        response = await self.hub.dispatch(request)

        self._stats["requests_handled"] += 1
        if response.error:
            self._stats["errors"] += 1
        self._stats["total_time_ms"] += (time.time() - start_time) * 1000

        return serialize(response)

    async def _respond(self, identity: bytes, raw_message: bytes) -> None:
        response = await self.handle_request(raw_message)
        try:
            await self._request_socket.send_multipart([identity, response])
        except zmq.ZMQError as e:
            logger.error(f"Failed to send response: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def serve(self) -> None:
        """Run the request loop until ``stop()`` is called."""
        self.bind()
        self._running = True
        self._serving = True
        self._spawn(self._drain_events())
        logger.info("Starting comm event loop...")

        poller = zmq.asyncio.Poller()
        poller.register(self._request_socket, zmq.POLLIN)

        try:
            while self._running:
                try:
                    # Poll with timeout for graceful shutdown
                    events = dict(await poller.poll(timeout=100))
                    if self._request_socket in events:
                        frames = await self._request_socket.recv_multipart()
                        if len(frames) < 2:
                            logger.warning(f"Dropping malformed request with {len(frames)} frame(s)")
                            continue
                        self._spawn(self._respond(frames[0], frames[-1]))
                except zmq.ZMQError as e:
                    if e.errno == zmq.ETERM:
                        break  # Context terminated
                    logger.error(f"ZMQ error: {e}")
        finally:
            self._serving = False
            await self._close()

        logger.info("Comm event loop stopped")

    async def stop(self) -> None:
        """Stop serving and release the sockets.

        When ``serve()`` is running, the loop notices within one poll interval
        and releases the sockets itself.
        """
        self._running = False
        if not self._serving:
            await self._close()

    async def _close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.hub.publisher == self._enqueue_event:
            self.hub.publisher = None

        if self._request_socket:
            self._request_socket.close()
            self._request_socket = None
        if self._event_socket:
            self._event_socket.close()
            self._event_socket = None
        if self._context:
            self._context.term()
            self._context = None
            logger.info("Comm server stopped")

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._running

    @property
    def request_endpoint(self) -> str:
        """Get the actual request endpoint, for clients."""
        return self.config._build_endpoint("requests", self._actual_request_port)

    @property
    def event_endpoint(self) -> str:
        """Get the actual event endpoint, for clients."""
        return self.config._build_endpoint("events", self._actual_event_port)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get server statistics."""
        uptime = time.time() - self._start_time
        avg_time = 0.0
        if self._stats["requests_handled"] > 0:
            avg_time = self._stats["total_time_ms"] / self._stats["requests_handled"]

        return {
            **self._stats,
            "uptime_seconds": uptime,
            "avg_request_time_ms": avg_time,
        }


__all__ = ["CommServer"]

"""
Loom Runtime.

Owns the service registry and drives the one-time startup: bind every client
surface entry to a remote, run all ``on_init`` hooks to completion, spawn
every ``on_start`` hook, then announce that the runtime has started.

::: This is-in-layer Core-Layer.
::: This is-in-component Lifecycle-Controller.
::: This depends-on loom.comm.hub.
"""

import asyncio
import inspect
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set

from .comm.hub import CommHub
from .comm.remotes import Remote
from .exceptions import (
    AlreadyStartedError,
    InitPhaseError,
    NotStartedError,
    StartupAbortedError,
)
from .lifecycle import LifecycleState, StartupOptions
from .logging_config import configure_logger_for_trace
from .markers import is_property_marker, is_signal_marker
from .registry import ServiceRegistry
from .service import Service

logger = configure_logger_for_trace(__name__)


class Runtime:
    """Service registry plus lifecycle controller.

    ::: This is-in-layer Core-Layer.
    ::: This is a service.
    ::: This is stateful.
    ::: This has-singleton-scope.

    Usage:
        runtime = Runtime()
        runtime.create_service({"name": "EchoService", "client": {"say": say}})
        await runtime.start()
        echo = runtime.get_service("EchoService")

    Startup is single-shot. If binding or an ``on_init`` hook fails, or start()
    is cancelled, the runtime stays in STARTING for good: bound remotes are
    left in place, ``startup_error`` holds the failure, further ``start()``
    calls fail and every ``on_started_complete()`` waiter receives the same
    error. A retry needs a new Runtime.
    """

    def __init__(self, hub: Optional[CommHub] = None):
        self.hub = hub or CommHub()
        self.registry = ServiceRegistry(self.hub)
        self._state = LifecycleState.NOT_STARTED
        self._options: Optional[StartupOptions] = None
        self._startup_error: Optional[Exception] = None
        self._started_future: Optional[asyncio.Future] = None
        self._start_tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def started(self) -> bool:
        return self._state is LifecycleState.STARTED

    @property
    def options(self) -> Optional[StartupOptions]:
        """Options resolved by start(); None before it."""
        return self._options

    @property
    def startup_error(self) -> Optional[Exception]:
        return self._startup_error

    # =========================================================================
    # Registry
    # =========================================================================

    def create_service(self, definition: Any) -> Service:
        """Register a service. Only allowed before start().

        Raises:
            AlreadyStartedError: start() was already invoked
            ServiceValidationError: Malformed definition
            DuplicateServiceError: Name already registered
        """
        if self._state is not LifecycleState.NOT_STARTED:
            raise AlreadyStartedError("Services must be created before the runtime starts")
        return self.registry.create_service(definition)

    def get_service(self, name: str) -> Service:
        """Return a started service by name.

        Raises:
            NotStartedError: The runtime has not finished starting
            ServiceNotFoundError: No such service
        """
        if not self.started:
            raise NotStartedError("Cannot call get_service until the runtime has started")
        return self.registry.get(name)

    @property
    def services(self) -> Mapping[str, Service]:
        """Read-only view of every service, available once started."""
        if not self.started:
            raise NotStartedError("Cannot list services until the runtime has started")
        return MappingProxyType(self.registry.as_mapping())

    # =========================================================================
    # Startup
    # =========================================================================

    async def start(self, options: Optional[Any] = None) -> None:
        """Bind, initialize and start every registered service.

        Args:
            options: StartupOptions, a mapping of option names, or None

        Raises:
            AlreadyStartedError: start() was invoked before
            ServiceValidationError: options are malformed
            InitPhaseError: One or more on_init hooks failed
            CommError: A client surface entry could not be bound
        """
        if self._state is not LifecycleState.NOT_STARTED:
            raise AlreadyStartedError("Runtime already started")

        resolved = StartupOptions.resolve(options)
        self._state = LifecycleState.STARTING
        self._options = resolved
        logger.info(f"Starting runtime with {len(self.registry)} service(s)")

        try:
            self._bind_remotes(resolved)
            await self._run_init_phase()
        except BaseException as e:
            self._fail_startup(e)
            raise

        self._run_start_phase()

        self._state = LifecycleState.STARTED
        self._resolve_waiters(None)
        self.hub.expose()
        logger.info("Runtime started")

    def _fail_startup(self, exc: BaseException) -> None:
        if isinstance(exc, Exception):
            error = exc
        else:
            error = StartupAbortedError(f"Startup aborted by {type(exc).__name__}")
            error.__cause__ = exc
        if not isinstance(error, InitPhaseError):
            logger.error(f"Startup failed: {error!r}")
        self._startup_error = error
        self._resolve_waiters(error)

    def _bind_remotes(self, options: StartupOptions) -> None:
        inbound = options.inbound_middleware
        outbound = options.outbound_middleware
        for service in self.registry:
            surface = service.client
            binding = service.comm
            bound = 0
            for key, value in list(surface.items()):
                if isinstance(value, Remote):
                    continue
                if is_signal_marker(value):
                    surface[key] = binding.create_signal(key, inbound, outbound)
                elif is_property_marker(value):
                    surface[key] = binding.create_property(key, value.initial_value, inbound, outbound)
                elif callable(value):
                    surface[key] = binding.wrap_method(surface, key, inbound, outbound)
                else:
                    continue
                bound += 1
            logger.debug(f"Bound {bound} remote(s) for {service.name}")

    async def _run_init_phase(self) -> None:
        services = [s for s in self.registry if s.has_init]
        logger.info(f"Running on_init for {len(services)} service(s)")

        results = await asyncio.gather(
            *(self._invoke_hook(service.on_init) for service in services),
            return_exceptions=True,
        )

        failures: Dict[str, BaseException] = {}
        for service, result in zip(services, results):
            if isinstance(result, BaseException):
                logger.error(f"{service.name}.on_init failed: {result!r}")
                failures[service.name] = result

        if failures:
            error = InitPhaseError(failures)
            raise error from next(iter(failures.values()))

    def _run_start_phase(self) -> None:
        services = [s for s in self.registry if s.has_start]
        logger.info(f"Spawning on_start for {len(services)} service(s)")
        for service in services:
            task = asyncio.create_task(
                self._invoke_hook(service.on_start), name=f"loom-start-{service.name}"
            )
            self._start_tasks.add(task)
            task.add_done_callback(self._on_start_task_done)

    @staticmethod
    async def _invoke_hook(hook) -> None:
        result = hook()
        if inspect.isawaitable(result):
            await result

    def _on_start_task_done(self, task: asyncio.Task) -> None:
        self._start_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{task.get_name()} failed", exc_info=exc)

    @property
    def pending_start_tasks(self) -> List[asyncio.Task]:
        return list(self._start_tasks)

    # =========================================================================
    # Completion
    # =========================================================================

    def _resolve_waiters(self, error: Optional[BaseException]) -> None:
        future = self._started_future
        self._started_future = None
        if future is None or future.done():
            return
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    async def on_started_complete(self) -> None:
        """Wait until the runtime has started.

        Returns immediately when already started. Any number of callers may
        wait; each is resolved once.

        Raises:
            InitPhaseError: Startup failed in the init phase
            StartupAbortedError: start() was cancelled
            Exception: Whatever else made startup fail, such as a bind error
        """
        if self.started:
            return
        if self._startup_error is not None:
            raise self._startup_error
        if self._started_future is None:
            self._started_future = asyncio.get_running_loop().create_future()
        await asyncio.shield(self._started_future)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> None:
        """Cancel start-phase tasks that are still running and wait for them."""
        tasks = list(self._start_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info(f"Cancelled {len(tasks)} running on_start task(s)")


# =============================================================================
# Default Runtime
# =============================================================================

_default_runtime: Optional[Runtime] = None


def get_runtime() -> Runtime:
    """Process-wide runtime used by the module-level helpers."""
    global _default_runtime
    if _default_runtime is None:
        _default_runtime = Runtime()
    return _default_runtime


def reset_runtime() -> Runtime:
    """Replace the process-wide runtime with a fresh one."""
    global _default_runtime
    _default_runtime = Runtime()
    return _default_runtime


__all__ = [
    "Runtime",
    "get_runtime",
    "reset_runtime",
]

"""
Lifecycle State and Startup Options.

::: This is-in-layer Core-Layer.
::: This is-in-component Lifecycle-Controller.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from .comm.middleware import Middleware, normalize_chain
from .exceptions import ServiceValidationError


class LifecycleState(Enum):
    """
    Runtime lifecycle. Transitions only move forward.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    """
    NOT_STARTED = "not_started"  # Services may be declared
    STARTING = "starting"        # start() invoked; also terminal when on_init failed
    STARTED = "started"          # Services bound, initialized and started


@dataclass(frozen=True)
class StartupOptions:
    """
    Options resolved once when the runtime starts.

    ::: This is-in-layer Core-Layer.
    ::: This is a value-object.
    ::: This is stateless.

    Both middleware chains default to empty, which passes traffic through.
    """
    inbound_middleware: Tuple[Middleware, ...] = ()
    outbound_middleware: Tuple[Middleware, ...] = ()

    def __post_init__(self):
        try:
            object.__setattr__(self, "inbound_middleware", normalize_chain(self.inbound_middleware))
            object.__setattr__(self, "outbound_middleware", normalize_chain(self.outbound_middleware))
        except TypeError as e:
            raise ServiceValidationError(str(e)) from e

    @classmethod
    def resolve(cls, options: Optional[Any]) -> "StartupOptions":
        """Fill unspecified options with defaults.

        Accepts None, a StartupOptions or a mapping of option names.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, Mapping):
            known = {f.name for f in fields(cls)}
            unknown = sorted(set(options) - known)
            if unknown:
                raise ServiceValidationError(f"Unknown startup options: {', '.join(map(str, unknown))}")
            return cls(**{k: v for k, v in options.items() if v is not None})
        raise ServiceValidationError(
            f"Startup options should be a StartupOptions, a mapping or None; got {type(options).__name__}"
        )


__all__ = [
    "LifecycleState",
    "StartupOptions",
]

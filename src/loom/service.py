"""
Service Model.

A Service is the registered form of a service definition: a name, a client
surface and optional ``on_init``/``on_start`` hooks. Definitions are either
Service subclasses or plain mappings.

::: This is-in-layer Core-Layer.
::: This is-in-component Service-Registry.
"""

from types import MethodType
from typing import Any, Callable, Dict, Iterator, Mapping, MutableMapping, Optional, TYPE_CHECKING

from .exceptions import ServiceValidationError

if TYPE_CHECKING:
    from .comm.binding import ServiceBinding


HOOK_NAMES = ("on_init", "on_start")

# Instance state set by Service.__init__ and the registry
RESERVED_FIELDS = frozenset({"self", "comm", "has_init", "has_start"})


class ClientSurface(MutableMapping):
    """Client-facing entries of a service.

    ::: This is-in-layer Core-Layer.
    ::: This is a registry.
    ::: This is stateful.

    Entries are handlers, signal/property markers, bound remotes or plain
    data. They are reachable by key (``surface["say"]``) and as attributes
    (``surface.say``). ``server`` points back at the owning service and is
    never an entry.
    """

    def __init__(self, entries: Optional[Mapping[str, Any]] = None, server: Optional["Service"] = None):
        object.__setattr__(self, "_entries", dict(entries or {}))
        object.__setattr__(self, "server", server)

    def __getitem__(self, key: str) -> Any:
        return self._entries[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def __delitem__(self, key: str) -> None:
        del self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._entries[name]
        except KeyError:
            raise AttributeError(f"Client surface has no entry '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "server" or name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._entries[name] = value

    def __delattr__(self, name: str) -> None:
        try:
            del self._entries[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        owner = self.server.name if self.server is not None else None
        return f"<ClientSurface of {owner!r} keys={sorted(self._entries)}>"


class Service:
    """Base class for services.

    ::: This is-in-layer Core-Layer.
    ::: This is a service.
    ::: This is stateful.

    Subclasses set ``name`` and ``client`` as class attributes (or pass them
    to ``__init__``) and optionally define ``on_init`` and ``on_start``, sync
    or async. The runtime calls every ``on_init`` before any ``on_start``.

    Example:
        class PointsService(Service):
            name = "PointsService"
            client = {"points_changed": create_signal()}

            async def on_init(self):
                self.points = {}
    """

    name: str = ""
    client: Any = None

    def __init__(self, name: Optional[str] = None, client: Optional[Mapping[str, Any]] = None, **fields: Any):
        if name is not None:
            self.name = name
        if client is not None:
            self.client = client
        for key, value in fields.items():
            setattr(self, key, value)
        self.comm: Optional["ServiceBinding"] = None
        self.has_init = False
        self.has_start = False

    @classmethod
    def from_mapping(cls, definition: Mapping[str, Any]) -> "Service":
        """Build a Service from a mapping definition.

        ``on_init``/``on_start`` entries are bound to the new service, so they
        receive it as their only argument. Other keys become attributes.
        """
        fields = dict(definition)
        hooks = {key: fields.pop(key) for key in HOOK_NAMES if key in fields}
        if not all(isinstance(key, str) for key in fields):
            raise ServiceValidationError("Service definition keys must be strings")
        shadowing = sorted(key for key in fields if cls._shadows_internal(key))
        if shadowing:
            raise ServiceValidationError(
                f"Service definition keys shadow Service internals: {', '.join(shadowing)}"
            )
        service = cls(**fields)
        for key, hook in hooks.items():
            if hook is None:
                continue
            if not callable(hook):
                raise ServiceValidationError(
                    f"Service.{key} must be callable; got {type(hook).__name__}"
                )
            setattr(service, key, MethodType(hook, service))
        return service

    @classmethod
    def _shadows_internal(cls, key: str) -> bool:
        if key in ("name", "client"):
            return False
        return key.startswith("_") or key in RESERVED_FIELDS or hasattr(cls, key)

    def _hook(self, name: str) -> Optional[Callable[[], Any]]:
        hook = getattr(self, name, None)
        if hook is None:
            return None
        if not callable(hook):
            raise ServiceValidationError(
                f'"{self.name}".{name} must be callable; got {type(hook).__name__}'
            )
        return hook

    def detect_hooks(self) -> None:
        """Record which lifecycle hooks this service provides."""
        self.has_init = self._hook("on_init") is not None
        self.has_start = self._hook("on_start") is not None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


def describe_service(service: Service) -> Dict[str, Any]:
    """Summary used in logs and diagnostics."""
    return {
        "name": service.name,
        "client_keys": sorted(service.client) if isinstance(service.client, ClientSurface) else [],
        "has_init": service.has_init,
        "has_start": service.has_start,
    }


__all__ = [
    "ClientSurface",
    "Service",
    "describe_service",
]

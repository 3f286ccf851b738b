"""
Service Bindings.

A ServiceBinding is the per-service handle allocated by the CommHub when a
service is registered. The runtime asks it to turn client surface entries
into remotes at start time.

::: This is-in-layer Service-Layer.
::: This is-in-component Comm-Adapter.
"""

from typing import Any, Dict, FrozenSet, Mapping, MutableMapping, Optional, TYPE_CHECKING

from ..exceptions import CommError
from .middleware import MiddlewareChain, normalize_chain
from .remotes import Remote, RemoteMethod, RemoteProperty, RemoteSignal

if TYPE_CHECKING:
    from .hub import CommHub


class ServiceBinding:
    """Remotes owned by one service.

    ::: This is-in-layer Service-Layer.
    ::: This is a registry.
    ::: This is stateful.
    """

    def __init__(self, hub: "CommHub", service_name: str):
        self.hub = hub
        self.service_name = service_name
        self._remotes: Dict[str, Remote] = {}

    # =========================================================================
    # Factories
    # =========================================================================

    def _add(self, remote: Remote) -> Remote:
        if remote.name in self._remotes:
            raise CommError(f'"{self.service_name}.{remote.name}" is already bound')
        self._remotes[remote.name] = remote
        return remote

    def wrap_method(
        self,
        owner: Mapping[str, Any],
        key: str,
        inbound: Optional[MiddlewareChain] = None,
        outbound: Optional[MiddlewareChain] = None,
    ) -> RemoteMethod:
        """Expose ``owner[key]`` as a client-invokable method.

        The handler is captured now; replacing ``owner[key]`` with the
        returned RemoteMethod is up to the caller.
        """
        handler = owner[key]
        if not callable(handler):
            raise CommError(f'"{self.service_name}.{key}" is not callable')
        return self._add(RemoteMethod(
            self, key, handler, normalize_chain(inbound), normalize_chain(outbound)
        ))

    def create_signal(
        self,
        key: str,
        inbound: Optional[MiddlewareChain] = None,
        outbound: Optional[MiddlewareChain] = None,
    ) -> RemoteSignal:
        """Expose a push channel named ``key``."""
        return self._add(RemoteSignal(
            self, key, normalize_chain(inbound), normalize_chain(outbound)
        ))

    def create_property(
        self,
        key: str,
        initial_value: Any = None,
        inbound: Optional[MiddlewareChain] = None,
        outbound: Optional[MiddlewareChain] = None,
    ) -> RemoteProperty:
        """Expose a replicated value named ``key`` seeded with ``initial_value``."""
        return self._add(RemoteProperty(
            self, key, initial_value, normalize_chain(inbound), normalize_chain(outbound)
        ))

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_remote(self, name: str, kind: Optional[type] = None) -> Optional[Remote]:
        remote = self._remotes.get(name)
        if remote is not None and kind is not None and not isinstance(remote, kind):
            return None
        return remote

    @property
    def remotes(self) -> Mapping[str, Remote]:
        return dict(self._remotes)

    @property
    def is_bound(self) -> bool:
        return bool(self._remotes)

    @property
    def clients(self) -> FrozenSet[str]:
        return self.hub.clients

    def describe(self, client_id: Optional[str] = None) -> Dict[str, Any]:
        """Manifest of this service's remotes as seen by a client."""
        manifest: Dict[str, Any] = {"methods": [], "signals": [], "properties": {}}
        for name, remote in sorted(self._remotes.items()):
            if isinstance(remote, RemoteMethod):
                manifest["methods"].append(name)
            elif isinstance(remote, RemoteSignal):
                manifest["signals"].append(name)
            elif isinstance(remote, RemoteProperty):
                visible, value = remote.snapshot(client_id)
                if visible:
                    manifest["properties"][name] = value
        return manifest

    # =========================================================================
    # Events
    # =========================================================================

    def publish(self, client_id: Optional[str], event_type: str, data: MutableMapping[str, Any]) -> None:
        self.hub.publish(client_id, event_type, data)

    def forget_client(self, client_id: str) -> None:
        for remote in self._remotes.values():
            if isinstance(remote, RemoteProperty):
                remote.forget_client(client_id)

    def __repr__(self) -> str:
        return f"<ServiceBinding {self.service_name} remotes={len(self._remotes)}>"


__all__ = ["ServiceBinding"]

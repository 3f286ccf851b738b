"""
Loom Comm Layer.

Turns service client surface entries into client-reachable remotes and
serves them over ZeroMQ.

::: This is-in-layer Service-Layer.
::: This is-in-component Comm-Adapter.
"""

from .binding import ServiceBinding
from .hub import CommHub, RequestError
from .middleware import Middleware, normalize_chain, run_middleware
from .remotes import Connection, Remote, RemoteMethod, RemoteProperty, RemoteSignal

__all__ = [
    "CommHub",
    "RequestError",
    "ServiceBinding",
    "Middleware",
    "normalize_chain",
    "run_middleware",
    "Remote",
    "RemoteMethod",
    "RemoteSignal",
    "RemoteProperty",
    "Connection",
]

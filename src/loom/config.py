"""
Loom Comm Configuration.

Configuration dataclass and environment variable support for the ZeroMQ
comm transport.

::: This is-in-layer Protocol-Layer.
::: This is-in-component Comm-Transport.
"""

from dataclasses import dataclass, field
import os
import sys


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_HOST = "127.0.0.1"
DEFAULT_REQUEST_PORT = 5570
DEFAULT_EVENT_PORT = 5571
DEFAULT_TIMEOUT_MS = 30000  # 30 seconds


def get_default_ipc_path() -> str:
    """Get platform-appropriate IPC path."""
    if sys.platform == "win32":
        # No Unix domain sockets, TCP only
        return ""
    return "/tmp/loom"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() == "true"


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class CommConfig:
    """Configuration for the Loom ZeroMQ transport.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    ::: This is serializable.

    Supports environment variables:
    - LOOM_HOST: Server host (default: 127.0.0.1)
    - LOOM_REQUEST_PORT: Request socket port, 0 for dynamic (default: 5570)
    - LOOM_EVENT_PORT: Event socket port, 0 for dynamic (default: 5571)
    - LOOM_TIMEOUT_MS: Client request timeout in milliseconds (default: 30000)
    - LOOM_USE_IPC: Use IPC instead of TCP on Unix (default: false)
    - LOOM_IPC_PATH: IPC socket path prefix (default: /tmp/loom)
    - LOOM_LOG_REQUESTS: Log every request at debug level (default: false)
    """

    host: str = field(default_factory=lambda: os.environ.get("LOOM_HOST", DEFAULT_HOST))
    request_port: int = field(default_factory=lambda: int(os.environ.get("LOOM_REQUEST_PORT", DEFAULT_REQUEST_PORT)))
    event_port: int = field(default_factory=lambda: int(os.environ.get("LOOM_EVENT_PORT", DEFAULT_EVENT_PORT)))

    use_ipc: bool = field(default_factory=lambda: _env_flag("LOOM_USE_IPC"))
    ipc_path: str = field(default_factory=lambda: os.environ.get("LOOM_IPC_PATH", get_default_ipc_path()))

    timeout_ms: int = field(default_factory=lambda: int(os.environ.get("LOOM_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)))

    log_requests: bool = field(default_factory=lambda: _env_flag("LOOM_LOG_REQUESTS"))

    def _build_endpoint(self, name: str, port: int, bind: bool = False) -> str:
        """Build socket endpoint URL.

        Args:
            name: Socket name suffix (e.g., "requests", "events")
            port: TCP port number
            bind: If True, use wildcard host for binding

        Returns:
            Endpoint URL (ipc:// or tcp://)
        """
        if self.use_ipc and sys.platform != "win32":
            return f"ipc://{self.ipc_path}-{name}"
        host = "*" if bind else self.host
        return f"tcp://{host}:{port}"

    @property
    def request_endpoint(self) -> str:
        """Get the request socket endpoint (for clients)."""
        return self._build_endpoint("requests", self.request_port)

    @property
    def event_endpoint(self) -> str:
        """Get the event socket endpoint (for clients)."""
        return self._build_endpoint("events", self.event_port)

    @property
    def request_bind_endpoint(self) -> str:
        """Get the request socket bind endpoint (for server)."""
        return self._build_endpoint("requests", self.request_port, bind=True)

    @property
    def event_bind_endpoint(self) -> str:
        """Get the event socket bind endpoint (for server)."""
        return self._build_endpoint("events", self.event_port, bind=True)

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings."""
        warnings = []

        if self.request_port == self.event_port and self.request_port != 0:
            warnings.append("Request and event ports are the same - they must be different")

        if self.timeout_ms < 1000:
            warnings.append(f"Timeout {self.timeout_ms}ms is very short, may cause issues")

        if self.use_ipc and sys.platform == "win32":
            warnings.append("IPC mode requested but Windows doesn't support Unix domain sockets - using TCP")

        return warnings

    @classmethod
    def from_env(cls) -> "CommConfig":
        """Create configuration from environment variables."""
        return cls()


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_REQUEST_PORT",
    "DEFAULT_EVENT_PORT",
    "DEFAULT_TIMEOUT_MS",
    "CommConfig",
]

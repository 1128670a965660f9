"""Server address configuration."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from .exceptions import ConfigurationError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345
DEFAULT_PATH = "/buttplug"
DEFAULT_SCHEME = "ws"
CONNECTION_TIMEOUT = 10.0  # seconds to wait for a single connect attempt

_SCHEMES = frozenset(["ws", "wss"])


@dataclass(frozen=True)
class LinkConfig:
    """Address of the device server.

    Attributes:
        host: IP address or hostname of the server
        port: TCP port (default: 12345)
        path: WebSocket path (default: /buttplug)
        scheme: "ws" or "wss"
        connect_timeout: Seconds allowed for one connect attempt

    Raises:
        ConfigurationError: If any field is invalid.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    scheme: str = DEFAULT_SCHEME
    connect_timeout: float = CONNECTION_TIMEOUT

    def __post_init__(self) -> None:
        if not self.host or any(c in self.host for c in "/?#@ "):
            raise ConfigurationError(f"Invalid server host: {self.host!r}")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ConfigurationError(f"Invalid server port: {self.port!r}")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Server port out of range: {self.port}")
        if self.scheme not in _SCHEMES:
            raise ConfigurationError(f"Unsupported scheme: {self.scheme!r}")
        if not self.path.startswith("/"):
            raise ConfigurationError(f"Path must start with '/': {self.path!r}")
        if self.connect_timeout <= 0:
            raise ConfigurationError("connect_timeout must be positive")

    @property
    def uri(self) -> str:
        """Return the WebSocket URI of the server."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}{self.path}"

    @classmethod
    def from_uri(cls, uri: str, connect_timeout: float = CONNECTION_TIMEOUT) -> LinkConfig:
        """Build a config from a URI such as ``ws://127.0.0.1:12345/buttplug``."""
        try:
            parts = urlsplit(uri)
            port = parts.port
        except ValueError as err:
            raise ConfigurationError(f"Malformed server URI {uri!r}: {err}") from err

        if not parts.hostname:
            raise ConfigurationError(f"Malformed server URI {uri!r}: missing host")

        return cls(
            host=parts.hostname,
            port=port if port is not None else DEFAULT_PORT,
            path=parts.path or DEFAULT_PATH,
            scheme=parts.scheme,
            connect_timeout=connect_timeout,
        )

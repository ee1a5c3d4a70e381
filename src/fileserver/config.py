"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the file server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m fileserver --port 3000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FILESERVER_PORT=3000 python -m fileserver                 │
    │                                                                      │
    │   3. Default values (in the dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything is validated before the server binds a socket: a bad root
directory or output level is reported at startup, never on first request.

=============================================================================
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class ConfigurationError(ValueError):
    """
    Invalid configuration, detected at construction time.

    Raised for a root directory that is relative, missing or not a
    directory, for OutputLevel.NONE handed to the output filter, and for
    out-of-range server settings.
    """


class OutputLevel(Enum):
    """
    How much the output filter prints per exchange.

        NONE     no output filter is installed at all
        DEFAULT  one common-log-style summary line
        VERBOSE  summary line plus request and response headers
    """

    NONE = "none"
    DEFAULT = "default"
    VERBOSE = "verbose"

    @classmethod
    def parse(cls, value: Union["OutputLevel", str]) -> "OutputLevel":
        """
        Accept an OutputLevel or its name, case-insensitively.

        Raises:
            ConfigurationError: For anything that is not a known level.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        choices = ", ".join(level.value for level in cls)
        raise ConfigurationError(f"Invalid output level: {value!r} (choose from {choices})")


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the file server and its reference engine.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, timeout, keep_alive_timeout

    HTTP SETTINGS
    - max_header_size, server_name, context_path

    THREAD POOL SETTINGS
    - min_workers, max_workers, queue_size

    CONTENT
    - root, output_level

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = 8000
    """Port to listen on. 0 asks the OS for a free one."""

    backlog: int = 128

    timeout: Optional[float] = 30.0
    """Socket timeout while a request is being read or written."""

    keep_alive_timeout: float = 5.0
    """Idle time allowed between requests on a persistent connection."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_header_size: int = 64 * 1024

    server_name: str = "fileserver"

    context_path: str = "/"
    """Mount point of the file handler; request paths are taken relative to it."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16
    queue_size: int = 100

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root: str = field(default_factory=os.getcwd)
    """Directory served. Must be absolute and exist."""

    output_level: OutputLevel = OutputLevel.DEFAULT

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    def __post_init__(self):
        self.output_level = OutputLevel.parse(self.output_level)
        self.root = os.fspath(self.root)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FILESERVER_HOST       Bind address       (default: 127.0.0.1)
        FILESERVER_PORT       Port               (default: 8000)
        FILESERVER_ROOT       Served directory   (default: current dir)
        FILESERVER_OUTPUT     none|default|verbose (default: default)
        FILESERVER_WORKERS    Max worker threads (default: 16)
        FILESERVER_TIMEOUT    Socket timeout     (default: 30)
        FILESERVER_LOG_LEVEL  Logging level      (default: INFO)

        =====================================================================
        """
        try:
            max_workers = int(os.getenv("FILESERVER_WORKERS", "16"))
            return cls(
                host=os.getenv("FILESERVER_HOST", "127.0.0.1"),
                port=int(os.getenv("FILESERVER_PORT", "8000")),
                root=os.getenv("FILESERVER_ROOT") or os.getcwd(),
                output_level=os.getenv("FILESERVER_OUTPUT", "default"),
                min_workers=min(4, max_workers),
                max_workers=max_workers,
                timeout=float(os.getenv("FILESERVER_TIMEOUT", "30")),
                log_level=os.getenv("FILESERVER_LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}. Must be 0-65535.")

        if not os.path.isabs(self.root):
            raise ConfigurationError(f"Root directory must be an absolute path: {self.root}")

        if not os.path.isdir(self.root):
            raise ConfigurationError(f"Root directory does not exist: {self.root}")

        if not self.context_path.startswith("/"):
            raise ConfigurationError(f"context_path must start with '/': {self.context_path}")

        if self.min_workers < 1:
            raise ConfigurationError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigurationError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ConfigurationError("queue_size must be >= 1")

        if self.max_header_size < 1024:
            raise ConfigurationError("max_header_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

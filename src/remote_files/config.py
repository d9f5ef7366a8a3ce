"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Domain constants
    have sensible defaults but can be overridden via environment variables.
    """

    # Required: startup fails if missing
    base_url: str

    # Defaults, overridable via env
    container: str = ""
    timeout_seconds: float = 30.0
    session_cookie: str = "session"
    download_chunk_bytes: int = 65536


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        RF_BASE_URL: Base URL of the file server (e.g. http://nas.local:8080).

    Optional environment variables (with defaults):
        RF_CONTAINER: Top-level container for directory calls (default: "").
        RF_TIMEOUT_SECONDS: Transport timeout for every request (default: 30).
        RF_SESSION_COOKIE: Name of the session cookie (default: session).
        RF_DOWNLOAD_CHUNK_BYTES: Chunk size when streaming downloads (default: 65536).

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        base_url=os.environ["RF_BASE_URL"],
        container=os.environ.get("RF_CONTAINER", ""),
        timeout_seconds=float(os.environ.get("RF_TIMEOUT_SECONDS", "30")),
        session_cookie=os.environ.get("RF_SESSION_COOKIE", "session"),
        download_chunk_bytes=int(os.environ.get("RF_DOWNLOAD_CHUNK_BYTES", "65536")),
    )

"""
viewer_config.py -- Endpoints and window settings for the viewer.

Every value is read from an environment variable with a typed default;
command-line flags in cosmic_genesis.py override what is found here.
"""

import os
from dataclasses import dataclass

DEFAULT_WS_URL = "ws://localhost:8001/ws"
DEFAULT_API_URL = "http://localhost:8001"


def _env(name, default, cast=str):
    """
    Read an environment variable and cast it to the right type.
    If the var is missing, empty or malformed, return *default*.
    """
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return cast(raw)
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class ViewerConfig:
    # Push channel carrying universe_update snapshots.
    ws_url: str = DEFAULT_WS_URL
    # Base URL for GET /api/cell/{id}.
    api_url: str = DEFAULT_API_URL
    width: int = 1200
    height: int = 700
    fps: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ViewerConfig":
        return cls(
            ws_url=_env("COSMIC_WS_URL", DEFAULT_WS_URL),
            api_url=_env("COSMIC_API_URL", DEFAULT_API_URL),
            width=_env("COSMIC_WIDTH", 1200, int),
            height=_env("COSMIC_HEIGHT", 700, int),
            fps=_env("COSMIC_FPS", 60, int),
            log_level=_env("COSMIC_LOG_LEVEL", "INFO"),
        )

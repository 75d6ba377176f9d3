"""Client settings loaded from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TRACKER"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True)
class ClientSettings:
    api_url: str
    cache_dir: Path
    timeout_seconds: float
    log_level: str

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            api_url=_env(_k("API_URL"), "http://localhost:8000/api").rstrip("/"),
            cache_dir=_env_path(_k("CACHE_DIR"), Path.home() / ".tracker" / "cache"),
            timeout_seconds=_env_float(_k("TIMEOUT_SECONDS"), 10.0),
            log_level=_env(_k("LOG_LEVEL"), "INFO").upper(),
        )


_settings = None


def get_settings() -> ClientSettings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = ClientSettings.from_env()
    return _settings

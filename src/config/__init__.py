"""Environment-driven settings for the workflow engine and its CLI."""
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_TRUTHY = frozenset({"true", "1", "yes", "on", "enabled"})
_DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_bool(value: str | bool | None) -> bool:
    """Interpret a flag value; anything outside the truthy spellings is False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return bool(value)
    return value.strip().lower() in _TRUTHY


def _getenv(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Read ``key`` as an int, raising ValueError naming the variable when it is not one."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def _getenv_path(key: str) -> Optional[Path]:
    raw = _getenv(key)
    return Path(raw) if raw else None


def load_env_file(path: Optional[Path] = None) -> Optional[Path]:
    """Load a .env file without overriding variables already set.

    Args:
        path: Explicit .env path. If None, the working directory, its parent
              and the home directory are tried in that order.

    Returns:
        The file that was loaded, or None when no candidate exists
    """
    search = [path] if path else [Path(".env"), Path("../.env"), Path.home() / ".env"]
    found = next((candidate for candidate in search if candidate.exists()), None)
    if found is not None:
        load_dotenv(found, override=False)
    return found


@dataclass
class Config:
    """Settings snapshot taken from the process environment at construction."""

    app_name: str = field(default_factory=lambda: _getenv("APP_NAME", "workflow-engine"))
    environment: str = field(default_factory=lambda: _getenv("ENVIRONMENT", "production"))

    # logging
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_format: str = field(default_factory=lambda: _getenv("LOG_FORMAT", _DEFAULT_LOG_FORMAT))
    log_dir: Path = field(default_factory=lambda: Path(_getenv("LOG_DIR", "./logs")))
    log_to_file: bool = field(default_factory=lambda: _parse_bool(_getenv("LOG_TO_FILE", "false")))

    # engine
    reject_dependency_cycles: bool = field(
        default_factory=lambda: _parse_bool(_getenv("WORKFLOW_REJECT_CYCLES", "true"))
    )
    hook_workers: int = field(default_factory=lambda: _getenv_int("WORKFLOW_HOOK_WORKERS", 4))
    state_file: Optional[Path] = field(default_factory=lambda: _getenv_path("WORKFLOW_STATE_FILE"))

    # console; NO_COLOR counts as set even when empty
    verbose: bool = field(default_factory=lambda: _parse_bool(_getenv("VERBOSE", "false")))
    no_color: bool = field(default_factory=lambda: "NO_COLOR" in os.environ)

    def __post_init__(self):
        if self.hook_workers < 1:
            raise ValueError(f"WORKFLOW_HOOK_WORKERS must be at least 1, got {self.hook_workers}")


_config: Optional[Config] = None
_config_guard = threading.Lock()


def get_config() -> Config:
    """Return the process-wide Config, reading .env and the environment on first use."""
    global _config
    if _config is not None:
        return _config
    with _config_guard:
        if _config is None:
            load_env_file()
            _config = Config()
        return _config


def reset_config() -> None:
    """Forget the cached Config so the next get_config() builds a fresh one."""
    global _config
    with _config_guard:
        _config = None


__all__ = ["Config", "get_config", "load_env_file", "reset_config"]

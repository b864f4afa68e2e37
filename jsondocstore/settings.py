from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .paths import default_storage_dir

DEFAULT_DUMP_DELAY_MS = 5000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    # Where collection files live
    storage_path: Path

    # Debounce window between the last mutation and the write, in milliseconds
    dump_delay_ms: int

    # fsync the temp file before the atomic rename
    fsync: bool


def get_settings() -> Settings:
    raw_path = os.getenv("DATASTORE_PATH", "").strip()
    storage_path = Path(raw_path).expanduser() if raw_path else default_storage_dir()

    dump_delay_ms = _env_int("DATASTORE_DUMP_DELAY_MS", DEFAULT_DUMP_DELAY_MS)

    # Turning this off trades crash durability for faster flushes (tests, tmpfs).
    fsync = _env_bool("DATASTORE_FSYNC", True)

    return Settings(
        storage_path=storage_path,
        dump_delay_ms=dump_delay_ms,
        fsync=fsync,
    )


def load_settings(env_file: str | os.PathLike[str] | None = "local.env") -> Settings:
    """Like get_settings, after loading an optional dotenv file (existing env vars win)."""
    if env_file is not None:
        load_dotenv(env_file)
    return get_settings()

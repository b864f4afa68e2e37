from __future__ import annotations

import re
from pathlib import Path

_WORD_RE = re.compile(r"[A-Z]{2,}(?=[A-Z][a-z]|[0-9]|\b|_)|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")


def project_root() -> Path:
    # jsondocstore/paths.py -> jsondocstore -> project root
    return Path(__file__).resolve().parents[1]


def default_storage_dir() -> Path:
    # Not created here: the directory appears on first flush.
    return project_root() / "datastore"


def slugify(name: str) -> str:
    """
    Kebab-case a collection name into something safe for a filename.

    "TestData" -> "test-data", "user profiles_v2" -> "user-profiles-v-2".
    """
    words = _WORD_RE.findall(name)
    return "-".join(w.lower() for w in words)


def default_filename(name: str) -> str:
    slug = slugify(name)
    if not slug:
        raise ValueError(f"cannot derive a filename from collection name {name!r}")
    return f"{slug}.json"

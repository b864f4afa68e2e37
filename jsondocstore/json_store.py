from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def read_json(path: Path) -> Any | None:
    """
    Read JSON from disk.

    Returns None for missing or empty files. Unreadable files and invalid JSON raise
    (OSError / ValueError); callers decide whether that is fatal.
    """
    if not path.exists():
        return None
    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        return None
    return json.loads(raw)


def temp_path_for(path: Path) -> Path:
    # "~<filename>" in the same directory, so the final rename never crosses filesystems.
    return path.with_name("~" + path.name)


def atomic_write_json(path: Path, payload: Any, *, indent: int = 2, fsync: bool = True) -> None:
    """
    Atomically write JSON to disk by writing to a temp file then replacing.

    The target is always either the previous complete file or the new complete file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = temp_path_for(path)
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=indent)
        f.write("\n")
        if fsync:
            f.flush()
            os.fsync(f.fileno())
    tmp_path.replace(path)

"""Whole-file JSON writes that readers never observe half-done."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def _mkdir(p: Path) -> None:
    os.makedirs(p, exist_ok=True)


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize `data` next to `path`, then rename over it."""
    path = Path(path)
    _mkdir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

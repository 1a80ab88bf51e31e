"""Read-only access to the knowledge corpus.

All paths handed in and out of this module are POSIX paths relative to the
corpus root, e.g. ``cards/22.txt`` or ``minorArcana/suits/cups.txt``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .errors import ConfigurationError, DataIntegrityError


class KnowledgeCorpusReader:
    def __init__(self, root: Path, extensions: Iterable[str] = (".txt",)):
        self.root = Path(root)
        self.extensions = tuple(e.lower() for e in extensions)

    def exists(self) -> bool:
        return self.root.is_dir()

    def list_files(self, subdir: str = "") -> List[str]:
        """Recursively list matching files, sorted by relative path."""
        base = self.root / subdir if subdir else self.root
        if not base.is_dir():
            raise ConfigurationError(f"Missing knowledge folder: {base}")
        out = []
        for p in base.rglob("*"):
            if p.is_file() and p.suffix.lower() in self.extensions:
                out.append(p.relative_to(self.root).as_posix())
        return sorted(out)

    def has_file(self, relative_path: str) -> bool:
        return (self.root / relative_path).is_file()

    def read(self, relative_path: str) -> str:
        path = self.root / relative_path
        if not path.is_file():
            raise ConfigurationError(f"Missing knowledge file: {relative_path} (under {self.root})")
        try:
            return path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError) as e:
            raise DataIntegrityError(f"Unreadable knowledge file {relative_path}: {e}") from e

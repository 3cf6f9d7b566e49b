"""Source enumeration and reading."""

from __future__ import annotations

import fnmatch
import logging
import os
from typing import Iterator, List, Sequence, Set

from .config import AnalysisConfig
from .models import ParseStatus, SourceFile

logger = logging.getLogger(__name__)

# Generated / output / tooling directories that are never descended into.
SKIP_DIRS: Set[str] = {
    "node_modules", ".git", ".hg", ".svn", "dist", "build", "coverage",
    ".expo", ".next", ".turbo", ".cache", "ios", "android", "__generated__",
    ".yarn", ".idea", ".vscode",
}


def glob_match(rel_path: str, pattern: str) -> bool:
    """``fnmatch`` with ``**/`` also matching zero leading directories."""
    if fnmatch.fnmatchcase(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return glob_match(rel_path, pattern[3:])
    return False


def _matches_any(rel_path: str, patterns: Sequence[str]) -> bool:
    return any(glob_match(rel_path, p) for p in patterns)


class SourceScanner:
    """Enumerate project files and read their text.

    ``discover`` and ``read`` are split so the engine can learn the full
    file set (needed to resolve import specifiers) before fanning reads out
    to workers.  ``scan`` combines both for callers that want a single
    lazy pass.
    """

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config
        self.root = config.validate_root()
        self._extensions = tuple(ext.lower() for ext in config.extensions)

    def discover(self) -> List[str]:
        """Return matching project-relative POSIX paths in sorted order."""
        found: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            rel_dir = os.path.relpath(dirpath, self.root)
            for filename in filenames:
                if not filename.lower().endswith(self._extensions):
                    continue
                rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                rel = rel.replace(os.sep, "/")
                if not _matches_any(rel, self.config.include):
                    continue
                if _matches_any(rel, self.config.exclude):
                    continue
                found.append(rel)
        found.sort()
        logger.debug("Discovered %d source files under %s", len(found), self.root)
        return found

    def read(self, rel_path: str) -> SourceFile:
        path = self.root / rel_path
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Cannot read %s: %s", rel_path, exc)
            return SourceFile(
                path=path,
                rel_path=rel_path,
                status=ParseStatus.FAILED,
                reason=exc.strerror or str(exc),
            )
        return SourceFile(path=path, rel_path=rel_path, text=text)

    def scan(self) -> Iterator[SourceFile]:
        """Lazily read every discovered file.  Not restartable."""
        for rel_path in self.discover():
            yield self.read(rel_path)

"""Disk cache for compiled templates.

Artifacts are Python source files named ``<sha1(resolved source path)>.py``.
Two header lines record what the artifact was built from:

    # quire-dependencies: ["/abs/views/layouts/app.tpl.html", ...]
    # quire-layouts: ["layouts.app", "layouts.base"]

An artifact is fresh when it is at least as new as its source and every
recorded dependency (layouts and eager includes). The layout header lists the
inheritance chain, nearest layout first. Writes go through a temp
file and ``os.replace`` so a reader never sees a partial artifact.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from quire.utils.io import ensure_directory, get_mtime, write_text

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".py"
DEPENDENCIES_HEADER = "# quire-dependencies: "
LAYOUT_HEADER = "# quire-layouts: "


@dataclass(frozen=True)
class CachedArtifact:
    path: Path
    source: str
    dependencies: Tuple[Path, ...]
    layout_chain: Tuple[str, ...] = ()

    @property
    def layout(self) -> Optional[str]:
        """The outermost layout, as on a fresh compile."""
        return self.layout_chain[-1] if self.layout_chain else None


class CacheManager:
    """Validity checks and atomic persistence for compiled artifacts."""

    def __init__(self, cache_path: Path) -> None:
        self.cache_path = ensure_directory(Path(cache_path))

    @staticmethod
    def key(source_path: Path) -> str:
        return hashlib.sha1(str(Path(source_path).resolve()).encode("utf-8")).hexdigest()

    def artifact_path(self, source_path: Path) -> Path:
        return self.cache_path / f"{self.key(source_path)}{ARTIFACT_SUFFIX}"

    def _read(self, artifact: Path) -> Optional[Tuple[str, Tuple[Path, ...], Tuple[str, ...]]]:
        lines = artifact.read_text(encoding="utf-8").split("\n", 2)
        if len(lines) < 3 or not lines[0].startswith(DEPENDENCIES_HEADER) or not lines[1].startswith(LAYOUT_HEADER):
            logger.warning("Ignoring artifact without headers: %s", artifact)
            return None
        try:
            deps = json.loads(lines[0][len(DEPENDENCIES_HEADER) :])
            layouts = json.loads(lines[1][len(LAYOUT_HEADER) :])
        except ValueError:
            deps = layouts = None
        if not isinstance(deps, list) or not isinstance(layouts, list):
            logger.warning("Ignoring artifact with corrupt headers: %s", artifact)
            return None
        return lines[2], tuple(Path(p) for p in deps), tuple(layouts)

    def _fresh(self, artifact_mtime: float, source_path: Path, dependencies: Iterable[Path]) -> bool:
        source_mtime = get_mtime(source_path)
        if source_mtime is None or artifact_mtime < source_mtime:
            return False
        for dep in dependencies:
            dep_mtime = get_mtime(dep)
            if dep_mtime is None or artifact_mtime < dep_mtime:
                return False
        return True

    def is_valid(self, source_path: Path) -> bool:
        """True iff a fresh artifact exists for ``source_path``."""
        return self.load(source_path) is not None

    def load(self, source_path: Path) -> Optional[CachedArtifact]:
        """Return the fresh artifact for ``source_path``, or None when stale or missing."""
        artifact = self.artifact_path(source_path)
        artifact_mtime = get_mtime(artifact)
        if artifact_mtime is None:
            return None
        try:
            parsed = self._read(artifact)
        except FileNotFoundError:
            # Removed by a concurrent clear().
            return None
        if parsed is None:
            return None
        source, deps, layouts = parsed
        if not self._fresh(artifact_mtime, source_path, deps):
            logger.debug("Stale artifact %s for %s", artifact.name, source_path)
            return None
        return CachedArtifact(path=artifact, source=source, dependencies=deps, layout_chain=layouts)

    def store(
        self,
        source_path: Path,
        source: str,
        dependencies: Iterable[Path] = (),
        layout_chain: Sequence[str] = (),
    ) -> Path:
        """Atomically write the artifact for ``source_path``."""
        artifact = self.artifact_path(source_path)
        deps = sorted({str(Path(d)) for d in dependencies})
        header = f"{DEPENDENCIES_HEADER}{json.dumps(deps)}\n{LAYOUT_HEADER}{json.dumps(list(layout_chain))}\n"
        write_text(artifact, header + source)
        logger.debug("Cached %s as %s", source_path, artifact.name)
        return artifact

    def clear(self) -> int:
        """Remove every artifact; returns how many were removed."""
        removed = 0
        for artifact in self.cache_path.glob(f"*{ARTIFACT_SUFFIX}"):
            try:
                artifact.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed


__all__ = ["CacheManager", "CachedArtifact", "DEPENDENCIES_HEADER", "LAYOUT_HEADER"]

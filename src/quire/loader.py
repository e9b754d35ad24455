"""Template name → file resolution with root containment.

Names are dot-separated (``layouts.app``) and map onto path components under
a root directory plus an extension. Every resolved file is canonicalised and
must stay under its permitted root; anything else fails closed.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from quire.exceptions import (
    IncludeNotFoundError,
    IncludeOutsideRootError,
    LayoutNotFoundError,
    TemplateNotFoundError,
)
from quire.utils.io import is_within, read_text

logger = logging.getLogger(__name__)


NAME_SEPARATORS = re.compile(r"[./\\]")


def name_to_parts(name: str) -> List[str]:
    """Split a dot-separated template name into path components.

    Slashes separate components too, and empty components are dropped, so a
    name never yields ``..`` or an absolute path.
    """
    return [part for part in NAME_SEPARATORS.split(name.strip()) if part]


class TemplateLoader:
    """Resolve template, layout and include names to files.

    Search order for includes:
    1. views_path / name + extension
    2. resources_path / name + extension
    3. resources_path / name + each fallback extension
    """

    def __init__(
        self,
        views_path: Path,
        extension: str = ".tpl.html",
        resources_path: Optional[Path] = None,
        fallback_extensions: Sequence[str] = (".tpl", ".html"),
    ) -> None:
        self.views_path = Path(views_path)
        self.extension = extension
        self.resources_path = Path(resources_path) if resources_path else self.views_path.parent
        self.fallback_extensions = tuple(fallback_extensions)

    def _candidate(self, root: Path, name: str, extension: str) -> Optional[Path]:
        parts = name_to_parts(name)
        if not parts:
            return None
        *dirs, leaf = parts
        return root.joinpath(*dirs, leaf + extension)

    def _check_root(self, path: Path, root: Path, kind: str, name: str) -> Path:
        resolved = path.resolve()
        if not is_within(resolved, root):
            logger.warning("Refusing %s '%s': %s is outside %s", kind, name, resolved, root.resolve())
            raise IncludeOutsideRootError(
                f"{kind.capitalize()} '{name}' resolves outside of {root}",
                context={"name": name, "path": str(resolved), "root": str(root)},
            )
        return resolved

    def source_path(self, name: str) -> Path:
        """Resolve a top-level template name.

        Raises:
            TemplateNotFoundError: If the file does not exist
            IncludeOutsideRootError: If it resolves outside views_path
        """
        path = self._candidate(self.views_path, name, self.extension)
        if path is None or not path.is_file():
            raise TemplateNotFoundError(
                f"View not found: {name} ({path})",
                context={"name": name, "path": str(path)},
            )
        return self._check_root(path, self.views_path, "template", name)

    def layout_path(self, name: str) -> Path:
        """Resolve an @extends target under views_path.

        Raises:
            LayoutNotFoundError: If the layout file does not exist
            IncludeOutsideRootError: If it resolves outside views_path
        """
        path = self._candidate(self.views_path, name, self.extension)
        if path is None or not path.is_file():
            raise LayoutNotFoundError(
                f"Layout not found: {name}",
                context={"name": name, "path": str(path)},
            )
        return self._check_root(path, self.views_path, "layout", name)

    def include_candidates(self, name: str) -> List[Path]:
        """List include candidate paths in search order."""
        searches: List[Tuple[Path, str]] = [
            (self.views_path, self.extension),
            (self.resources_path, self.extension),
        ]
        searches.extend((self.resources_path, ext) for ext in self.fallback_extensions)

        candidates: List[Path] = []
        for root, ext in searches:
            path = self._candidate(root, name, ext)
            if path is not None and path not in candidates:
                candidates.append(path)
        return candidates

    def include_path(self, name: str) -> Path:
        """Resolve an @include / @includeWhen target.

        The first existing candidate wins and must canonicalise under
        resources_path (views_path normally lives inside it); an escaping
        candidate is an error, never skipped.

        Raises:
            IncludeNotFoundError: If no candidate exists
            IncludeOutsideRootError: If the first existing candidate escapes
        """
        for path in self.include_candidates(name):
            if path.is_file():
                return self._check_root(path, self.resources_path, "include", name)
        raise IncludeNotFoundError(
            f"Include not found: {name}",
            context={"name": name, "searched": [str(p) for p in self.include_candidates(name)]},
        )

    def read(self, path: Path) -> str:
        """Read a resolved template file."""
        return read_text(path)


__all__ = ["TemplateLoader", "name_to_parts"]

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class QuireError(Exception):
    """Base exception for quire."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class ConfigError(QuireError, ValueError):
    """Raised when configuration cannot be loaded or fails validation."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        QuireError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class TemplateNotFoundError(QuireError, FileNotFoundError):
    """Raised when a template source file does not exist."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        QuireError.__init__(self, message, context=context)
        FileNotFoundError.__init__(self, message)


class LayoutNotFoundError(TemplateNotFoundError):
    """Raised when the target of an @extends directive does not exist."""


class IncludeNotFoundError(TemplateNotFoundError):
    """Raised when no include candidate exists."""


class IncludeOutsideRootError(QuireError, PermissionError):
    """Raised when a resolved include or layout escapes its permitted root."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        QuireError.__init__(self, message, context=context)
        PermissionError.__init__(self, message)


class MalformedDirectiveError(QuireError, ValueError):
    """Raised when directives are unbalanced or syntactically invalid."""

    def __init__(
        self,
        message: str,
        *,
        template: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        directive: Optional[str] = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if template is not None:
            ctx["template"] = template
        if line is not None:
            ctx["line"] = line
        if column is not None:
            ctx["column"] = column
        if directive is not None:
            ctx["directive"] = directive

        location = ""
        if template is not None:
            location = f" in '{template}'"
        if line is not None:
            location += f" at line {line}"
            if column is not None:
                location += f", column {column}"

        full = f"{message}{location}"
        QuireError.__init__(self, full, context=ctx)
        ValueError.__init__(self, full)
        self.template = template
        self.line = line
        self.column = column
        self.directive = directive


class TemplateRecursionError(QuireError, RecursionError):
    """Raised on include/layout cycles or when nesting exceeds max depth."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        QuireError.__init__(self, message, context=context)
        RecursionError.__init__(self, message)


class RenderError(QuireError):
    """Raised when executing a compiled template fails."""

    def __init__(
        self,
        message: str,
        *,
        template: Optional[str] = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if template is not None:
            ctx["template"] = template
        super().__init__(message, context=ctx)
        self.template = template


__all__ = [
    "QuireError",
    "ConfigError",
    "TemplateNotFoundError",
    "LayoutNotFoundError",
    "IncludeNotFoundError",
    "IncludeOutsideRootError",
    "MalformedDirectiveError",
    "TemplateRecursionError",
    "RenderError",
]

"""Comment stripping: removes ``<!-- ... -->`` spans before any other step."""
from __future__ import annotations

import re

from .base import ContentTransformer, CompileContext


class CommentStripper(ContentTransformer):
    """Remove every comment span; the first ``-->`` closes the span."""

    COMMENT_PATTERN = re.compile(r"<!--[\s\S]*?-->")

    def transform(self, content: str, context: CompileContext) -> str:
        return self.COMMENT_PATTERN.sub("", content)

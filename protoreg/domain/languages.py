"""Closed set of target languages supported by the code generators."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class Language(str, Enum):
    GO = "go"
    PYTHON = "python"
    JAVA = "java"
    CPP = "cpp"
    CSHARP = "csharp"
    RUST = "rust"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    DART = "dart"
    SWIFT = "swift"
    KOTLIN = "kotlin"
    OBJC = "objc"
    RUBY = "ruby"
    PHP = "php"
    SCALA = "scala"

    @classmethod
    def parse(cls, value: str) -> Optional["Language"]:
        """Return the matching member, or None for unknown identifiers."""
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            return None

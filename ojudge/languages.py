"""Languages accepted for submissions and their judge file extensions."""

from __future__ import annotations

import enum
from typing import Optional


class Language(str, enum.Enum):
    C = "c"
    CPP = "cpp"
    JAVA = "java"
    PYTHON = "python"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Language"]:
        """Return the matching language or ``None``; surrounding whitespace and case are ignored."""
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


_EXTENSIONS = {
    Language.C: "c",
    Language.CPP: "cpp",
    Language.JAVA: "java",
    Language.PYTHON: "py",
}

SUPPORTED_LANGUAGES = tuple(lang.value for lang in Language)

__all__ = ["Language", "SUPPORTED_LANGUAGES"]

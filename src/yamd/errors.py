"""Error taxonomy shared by the parser pipeline and the structural editor."""

from __future__ import annotations


class YamdError(ValueError):
    """Base class for every error raised by yamd."""


class DocumentParseError(YamdError):
    """The YAML text itself could not be decoded."""


class GrammarError(YamdError):
    """Malformed square-bracket attribute syntax in a declaration key."""

    def __init__(self, key: str, fragment: str, reason: str = "malformed attribute syntax") -> None:
        self.key = key
        self.fragment = fragment
        self.reason = reason
        super().__init__(f"{reason} in key {key!r}: {fragment!r}")


class SegmentationError(YamdError):
    """Malformed inline token, such as an unterminated ``$``."""

    def __init__(self, text: str, position: int, reason: str) -> None:
        self.text = text
        self.position = position
        self.reason = reason
        super().__init__(f"{reason} at offset {position}")


class StructureError(YamdError):
    """An edit would violate a tree invariant."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        super().__init__(message)

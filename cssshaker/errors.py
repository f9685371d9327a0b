"""Exception types raised by the shaker and its parsers."""

from __future__ import annotations
from typing import Optional


class ShakerError(Exception):
    """Base class for every error raised by cssshaker."""


class InvalidInputError(ShakerError):
    """Raised when the input cannot be read as an HTML document."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        self.position = position
        super().__init__(message)


class MalformedStyleError(ShakerError):
    """Raised when the content of a <style> element cannot be parsed as CSS."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        self.position = position
        super().__init__(message)


class SelectorError(ShakerError):
    """Raised when a selector cannot be evaluated against a document."""

    def __init__(self, message: str, selector: str = "") -> None:
        self.selector = selector
        super().__init__(message)

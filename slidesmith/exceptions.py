"""Exceptions for the slidesmith rendering engine."""

from pathlib import Path
from typing import List, Optional, Union


class SlidesmithError(Exception):
    """Base class for every error raised by slidesmith."""


class TemplateValidationError(SlidesmithError):
    """Raised when slides do not match the template they are rendered against."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        """
        Initialize TemplateValidationError.

        Args:
            message: Human-readable error message (usually the first finding)
            errors: Every finding collected by the validator
        """
        super().__init__(message)
        self.errors = list(errors or [])

    def __str__(self) -> str:
        """Return formatted error message."""
        msg = super().__str__()

        others = [e for e in self.errors if e != msg]
        if others:
            msg += "\nOther findings:\n" + "\n".join(f"  - {e}" for e in others)

        return msg

    def add_error(self, error: str) -> None:
        """Append another finding to this error."""
        self.errors.append(error)


class TemplateLoadError(SlidesmithError):
    """Raised when a template or request document cannot be parsed."""


class RenderError(SlidesmithError):
    """Raised when a single slide cannot be composed."""

    def __init__(self, message: str, slide_index: Optional[int] = None):
        super().__init__(message)
        self.slide_index = slide_index

    def __str__(self) -> str:
        msg = super().__str__()
        if self.slide_index is not None:
            msg = f"Slide {self.slide_index + 1}: {msg}"
        return msg


class OutputWriteError(SlidesmithError):
    """Raised when the output directory or document cannot be written."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None

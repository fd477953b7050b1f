"""Exceptions raised by the streaming engine.

None of these are raised for malformed markdown; the engine degrades such input to text.
They signal misuse of the API or a defect in the engine itself.
"""

from typing import Any


class Stream2mdError(Exception):
    """Base exception for stream2md."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class BoundaryRegressionError(Stream2mdError):
    """The safe boundary moved backwards; the boundary detector is inconsistent."""


class StreamClosedError(Stream2mdError):
    """A chunk was appended after the stream was finalized."""


class PatchError(Stream2mdError):
    """A patch operation referenced a key that does not exist in the target forest."""

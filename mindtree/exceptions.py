"""Exceptions raised by the Ipê Mind Tree import pipeline."""

from typing import Optional


class MindTreeError(Exception):
    """Base class for all Ipê Mind Tree errors."""


class CanvasParseError(MindTreeError, ValueError):
    """A Canvas or Canvas2Document file could not be parsed."""

    def __init__(self, message: str, file_path: str = ""):
        self.file_path = file_path
        super().__init__(message)


class StorageError(MindTreeError, RuntimeError):
    """A bulk write to the database failed part way."""


class ImportSourceError(MindTreeError):
    """A directory, URL or Drive folder could not be read."""

    def __init__(self, message: str, source: str = ""):
        self.source = source
        super().__init__(message)


class LLMError(MindTreeError):
    """The language model endpoint could not produce a response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

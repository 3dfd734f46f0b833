"""
Operation Errors
================
Exception hierarchy shared by the dispatcher, the routines and the job
manager. Each class maps to one ``ErrorKind``.
"""

from __future__ import annotations

from .models import ErrorKind


class OperationError(Exception):
    """Base class for every failure of a named operation."""

    kind: ErrorKind = ErrorKind.PROCESSING


class UnknownOperationError(OperationError):
    """The requested tool does not exist."""

    kind = ErrorKind.ROUTING

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown operation: {name}")


class OperationUsageError(OperationError):
    """Wrong number of inputs or invalid parameters."""

    kind = ErrorKind.USAGE


class MissingInputFileError(OperationUsageError):
    """A job references a file id the registry does not know."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File {file_id} not found")


class ProcessingError(OperationError):
    """The input could not be processed (corrupt, encrypted, unsupported)."""

    kind = ErrorKind.PROCESSING

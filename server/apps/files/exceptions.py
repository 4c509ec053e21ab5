"""Exceptions for files app."""

import enum
from typing import final


@final
class ErrorKind(enum.StrEnum):
    """Failure categories reported by file store operations."""

    INVALID_NAME = 'InvalidName'
    PATH_ESCAPE = 'PathEscape'
    NOT_FOUND = 'NotFound'
    COLLISION = 'Collision'
    IO_FAILURE = 'IOFailure'
    METADATA_WRITE_FAILURE = 'MetadataWriteFailure'


class FileStoreError(Exception):
    """Base class for file store failures.

    Every subclass carries the :class:`ErrorKind` it is reported as, so
    the logic layer can turn any caught error into a tagged result.
    """

    kind: ErrorKind = ErrorKind.IO_FAILURE

    def __init__(self, message: str) -> None:
        """Initialize FileStoreError.

        Args:
            message: Human readable description of the failure.
        """
        self.message = message
        super().__init__(message)


class InvalidNameError(FileStoreError):
    """Raised when a folder or file name fails pattern validation."""

    kind = ErrorKind.INVALID_NAME


class PathEscapeError(FileStoreError):
    """Raised when a resolved path would leave the storage root."""

    kind = ErrorKind.PATH_ESCAPE


class NotFoundError(FileStoreError):
    """Raised when a file, folder, trash record or share token is absent."""

    kind = ErrorKind.NOT_FOUND


class CollisionError(FileStoreError):
    """Raised when the destination exists and overwriting is not allowed."""

    kind = ErrorKind.COLLISION


class StorageIOError(FileStoreError):
    """Raised when a filesystem write, rename or copy fails."""

    kind = ErrorKind.IO_FAILURE


class MetadataWriteError(FileStoreError):
    """Raised when a JSON document could not be persisted."""

    kind = ErrorKind.METADATA_WRITE_FAILURE

"""Local filesystem storage backends for the file tree and the trash."""

import logging
import os
import posixpath
from pathlib import Path, PurePosixPath
from typing import Any, final, override

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.move import file_move_safe
from django.core.files.storage import FileSystemStorage
from django.core.files.utils import validate_file_name

from server.apps.files.exceptions import CollisionError, StorageIOError
from server.apps.files.infrastructure.sandbox import get_sandbox

logger = logging.getLogger(__name__)


@final
class LocalFileStorage(FileSystemStorage):
    """Filesystem storage with logging and ``name (n).ext`` naming.

    Extends Django's FileSystemStorage with:
    - Numbered alternative names instead of random suffixes
    - Moves between storages that never overwrite
    - Failures logged and re-raised as :class:`StorageIOError`

    Names are paths relative to ``location``, as everywhere in Django's
    storage API; :meth:`name_for` converts a physical path.
    """

    def name_for(self, path: Path | str) -> str:
        """Convert a physical path inside the storage to a storage name.

        Args:
            path: Canonical path below ``location``.

        Returns:
            Relative name with forward slashes ('.' for the location).
        """
        return Path(path).relative_to(self.location).as_posix()

    @override
    def get_available_name(self, name: str, max_length: int | None = None) -> str:
        """Find a name that is free in the storage.

        Tries ``stem (1).ext``, ``stem (2).ext`` and so on. Nothing
        reserves the returned name, so two concurrent callers may receive
        the same one; writes that must not clobber use exclusive creation.

        Args:
            name: Desired name (e.g., 'docs/report.pdf').
            max_length: Optional maximum length for the name.

        Returns:
            name itself when free, otherwise the first free numbered
            variant (e.g., 'docs/report (2).pdf').
        """
        name = str(name).replace('\\', '/')
        dir_name, file_name = posixpath.split(name)
        validate_file_name(file_name)
        path = PurePosixPath(file_name)
        candidate = name
        counter = 1
        while not self.is_name_available(candidate, max_length=max_length):
            candidate = posixpath.join(
                dir_name,
                f'{path.stem} ({counter}){path.suffix}',
            )
            counter += 1
        return candidate

    @override
    def save(
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save content with error handling and logging.

        Args:
            name: Storage name for the file.
            content: bytes, str (written as UTF-8) or a file-like object.
            max_length: Optional maximum length for the name.

        Returns:
            Actual storage name used (may differ from name if conflicts).

        Raises:
            StorageIOError: If the write fails.
        """
        if isinstance(content, str):
            content = ContentFile(content.encode('utf-8'))
        elif isinstance(content, bytes):
            content = ContentFile(content)
        try:
            logger.info('Saving file: %s', name)
            saved_name = super().save(name, content, max_length)
        except OSError as error:
            logger.exception('Failed to save file: %s', name)
            raise StorageIOError(f'Error saving {posixpath.basename(name)}.') from error
        logger.info('Saved file: %s', saved_name)
        return saved_name

    def create_empty(self, name: str) -> None:
        """Create an empty file, failing if it already exists.

        Args:
            name: Storage name of the file.

        Raises:
            FileExistsError: If the file exists.
            StorageIOError: If creation fails for another reason.
        """
        path = Path(self.path(name))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch(exist_ok=False)
        except FileExistsError:
            raise
        except OSError as error:
            logger.exception('Failed to create file: %s', name)
            raise StorageIOError(f'Could not create {path.name}.') from error
        logger.info('Created empty file: %s', name)

    def copy(self, source: str, destination: str) -> str:
        """Copy a file inside the storage.

        Args:
            source: Name of an existing file.
            destination: Desired name of the copy.

        Returns:
            Name actually used for the copy.

        Raises:
            StorageIOError: If the copy fails.
        """
        logger.info('Copying file: %s -> %s', source, destination)
        try:
            with self.open(source) as source_file:
                return self.save(destination, source_file)
        except OSError as error:
            logger.exception('Copy failed: %s -> %s', source, destination)
            raise StorageIOError(
                f'Failed to copy {posixpath.basename(source)}.',
            ) from error

    def move(
        self,
        source: str,
        destination: str,
        target: 'LocalFileStorage | None' = None,
    ) -> None:
        """Move or rename a file, never overwriting.

        Args:
            source: Name of an existing file in this storage.
            destination: Name in the target storage.
            target: Storage receiving the file; defaults to this one.

        Raises:
            CollisionError: If the destination already exists.
            StorageIOError: If the move fails.
        """
        target = target or self
        source_path = self.path(source)
        destination_path = target.path(destination)
        try:
            logger.info('Moving file: %s -> %s', source_path, destination_path)
            os.makedirs(os.path.dirname(destination_path), exist_ok=True)
            file_move_safe(source_path, destination_path, allow_overwrite=False)
        except FileExistsError as error:
            logger.warning('Move target exists: %s', destination_path)
            raise CollisionError(
                f'Already exists at destination: {posixpath.basename(destination)}.',
            ) from error
        except OSError as error:
            logger.exception('Move failed: %s -> %s', source_path, destination_path)
            raise StorageIOError(
                f'Failed to move {posixpath.basename(source)}.',
            ) from error

    @override
    def delete(self, name: str) -> None:
        """Delete a file or an empty directory; a missing name is ignored.

        Args:
            name: Storage name to delete.

        Raises:
            StorageIOError: If the deletion fails.
        """
        try:
            logger.info('Deleting from storage: %s', name)
            super().delete(name)
        except OSError as error:
            logger.exception('Failed to delete from storage: %s', name)
            raise StorageIOError(
                f'Failed to delete {posixpath.basename(name)}.',
            ) from error

    def make_directory(self, name: str) -> None:
        """Create a directory and its parents.

        Args:
            name: Storage name of the directory ('' for the location).

        Raises:
            StorageIOError: If the directory cannot be created.
        """
        try:
            os.makedirs(self.path(name), exist_ok=True)
        except OSError as error:
            logger.exception('Failed to create folder: %s', name)
            raise StorageIOError(
                f'Could not create folder {posixpath.basename(name)}.',
            ) from error


def get_file_storage(*, allow_overwrite: bool = False) -> LocalFileStorage:
    """Build the storage of the user-visible file tree.

    Args:
        allow_overwrite: Whether saves replace existing files.

    Returns:
        LocalFileStorage rooted at the canonical ``settings.FILES_ROOT``.
    """
    return LocalFileStorage(
        location=get_sandbox().root,
        allow_overwrite=allow_overwrite,
    )


def get_trash_storage() -> LocalFileStorage:
    """Build the storage of the trash directory.

    Returns:
        LocalFileStorage rooted at ``settings.FILES_TRASH_DIR``.
    """
    return LocalFileStorage(location=settings.FILES_TRASH_DIR)

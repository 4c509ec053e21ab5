"""Business logic for file operations.

Every operation resolves names through the path sandbox, performs the
physical action first and updates the folder metadata documents
afterwards. A metadata failure is reported but never undoes the
physical action: the file's new location is authoritative.
"""

import logging
import os
import posixpath
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, BinaryIO

from server.apps.files.exceptions import (
    CollisionError,
    FileStoreError,
    MetadataWriteError,
    NotFoundError,
    StorageIOError,
)
from server.apps.files.infrastructure.metadata import (
    UNKNOWN,
    FolderMetadata,
    detect_mime_type,
    format_file_size,
    format_mtime,
    format_timestamp,
    get_metadata_store,
)
from server.apps.files.infrastructure.sandbox import (
    ROOT_FOLDER,
    clean_file_name,
    get_sandbox,
    is_valid_file_name,
    normalize_folder,
)
from server.apps.files.infrastructure.storage import (
    LocalFileStorage,
    get_file_storage,
)
from server.apps.files.logic.results import BatchResult, Err, Ok, Result
from server.apps.files.logic.tag_operations import get_global_tags
from server.apps.files.models import FileEntry, Tag

logger = logging.getLogger(__name__)


def _get_storage(*, allow_overwrite: bool = False) -> LocalFileStorage:
    """Get the physical storage backend.

    Args:
        allow_overwrite: Whether saves replace existing files.

    Returns:
        LocalFileStorage instance.
    """
    return get_file_storage(allow_overwrite=allow_overwrite)


def list_directory(folder: str) -> Result[dict[str, Any]]:
    """List the files directly inside a folder.

    Hidden files, non-regular files and files whose names fail validation
    are left out. Size and modification time are read from disk for
    every call; upload provenance and tags come from metadata.

    Args:
        folder: Logical folder.

    Returns:
        Ok with ``files`` (list of FileEntry) and ``globalTags``.
    """
    try:
        directory = get_sandbox().resolve(folder)
    except FileStoreError as error:
        return Err.from_error(error)

    metadata = get_metadata_store().get(folder)
    logger.debug('Listing directory: %s', directory)

    entries = []
    try:
        with os.scandir(directory) as scanner:
            for dir_entry in sorted(scanner, key=lambda item: item.name):
                if dir_entry.name.startswith('.'):
                    continue
                if not dir_entry.is_file(follow_symlinks=False):
                    continue
                if not is_valid_file_name(dir_entry.name):
                    continue
                entries.append(
                    _build_entry(dir_entry, metadata.get(dir_entry.name)),
                )
    except OSError:
        logger.exception('Failed to list directory: %s', directory)
        return Err.from_error(
            StorageIOError(f'Could not list {normalize_folder(folder)}.'),
        )

    return Ok({'files': entries, 'globalTags': get_global_tags()})


def _build_entry(dir_entry: os.DirEntry[str], attrs: Any) -> FileEntry:
    if not isinstance(attrs, dict):
        attrs = {}
    stat_result = dir_entry.stat(follow_symlinks=False)
    tags = tuple(
        Tag.from_dict(tag)
        for tag in attrs.get('tags') or []
        if isinstance(tag, dict)
    )
    return FileEntry(
        name=dir_entry.name,
        size=format_file_size(stat_result.st_size),
        size_bytes=stat_result.st_size,
        modified=format_mtime(stat_result.st_mtime),
        uploaded=attrs.get('uploaded') or UNKNOWN,
        uploader=attrs.get('uploader') or UNKNOWN,
        tags=tags,
    )


def create_file(folder: str, file_name: str, uploader: str) -> Result[dict[str, str]]:
    """Create an empty file and its metadata entry.

    Args:
        folder: Logical folder; created if missing.
        file_name: Name of the new file.
        uploader: Acting identity recorded as uploader.

    Returns:
        Ok with the created ``name``; Err(Collision) if the file exists.
    """
    try:
        path = get_sandbox().resolve_file(folder, file_name)
        storage = _get_storage()
        try:
            storage.create_empty(storage.name_for(path))
        except FileExistsError as error:
            raise CollisionError('File already exists') from error
        basename = path.name

        def add_entry(metadata: FolderMetadata) -> None:
            metadata[basename] = {
                'uploaded': format_timestamp(),
                'uploader': uploader,
            }

        get_metadata_store().mutate(folder, add_entry)
    except FileStoreError as error:
        return Err.from_error(error)

    logger.info('File created: %s by %s', path, uploader)
    return Ok({'name': basename})


def save_file(
    folder: str,
    file_name: str,
    content: bytes | str | BinaryIO,
    *,
    actor: str,
    uploader: str | None = None,
) -> Result[dict[str, Any]]:
    """Write file content and record who uploaded it.

    An existing file is overwritten. An existing metadata entry keeps its
    ``uploaded`` stamp and only gets ``modified`` and ``uploader``
    refreshed.

    Args:
        folder: Logical folder; created if missing.
        file_name: Target file name.
        content: Whole buffer or binary stream.
        actor: Acting identity of the request.
        uploader: Explicit uploader; defaults to the actor.

    Returns:
        Ok with the saved ``name`` and ``size`` in bytes.
    """
    uploader = uploader or actor
    try:
        path = get_sandbox().resolve_file(folder, file_name)
        storage = _get_storage(allow_overwrite=True)
        saved_name = storage.save(storage.name_for(path), content)
        written = storage.size(saved_name)
        basename = path.name
        now = format_timestamp()

        def record_upload(metadata: FolderMetadata) -> None:
            entry = metadata.get(basename)
            if isinstance(entry, dict):
                entry['modified'] = now
                entry['uploader'] = uploader
            else:
                metadata[basename] = {
                    'uploaded': now,
                    'modified': now,
                    'uploader': uploader,
                }

        get_metadata_store().mutate(folder, record_upload)
    except FileStoreError as error:
        return Err.from_error(error)

    return Ok({'name': basename, 'size': written})


def copy_files(
    source_folder: str,
    destination_folder: str,
    file_names: Iterable[str],
) -> BatchResult:
    """Copy files between folders, carrying their metadata along.

    Name clashes at the destination are resolved with ``name (n).ext``.
    The destination metadata document is written once after the loop.

    Args:
        source_folder: Logical source folder.
        destination_folder: Logical destination folder.
        file_names: Names of files to copy.

    Returns:
        BatchResult listing copied source names and per-file failures.
    """
    result = BatchResult()
    storage = _get_storage()
    sandbox = get_sandbox()
    try:
        source_dir = sandbox.resolve(source_folder)
    except FileStoreError as error:
        result.add_failure(normalize_folder(source_folder), error)
        return result
    try:
        destination_dir = sandbox.resolve(destination_folder, must_exist=False)
        storage.make_directory(storage.name_for(destination_dir))
    except FileStoreError as error:
        result.add_failure(normalize_folder(destination_folder), error)
        return result

    source_metadata = get_metadata_store().get(source_folder)
    copied: FolderMetadata = {}

    for file_name in file_names:
        try:
            original_name = clean_file_name(file_name)
            source_path = _existing_file(source_dir, original_name)
            saved_name = storage.copy(
                storage.name_for(source_path),
                storage.get_available_name(
                    storage.name_for(destination_dir / original_name),
                ),
            )
        except FileStoreError as error:
            result.add_failure(file_name, error)
            continue
        result.add_success(original_name)
        if isinstance(source_metadata.get(original_name), dict):
            copied[posixpath.basename(saved_name)] = dict(
                source_metadata[original_name],
            )

    if copied:
        _write_metadata(destination_folder, result, lambda doc: doc.update(copied))

    logger.info(
        'Copied %d files from %s to %s',
        len(result.succeeded),
        source_dir,
        destination_dir,
    )
    return result


def move_files(
    source_folder: str,
    destination_folder: str,
    file_names: Iterable[str],
) -> BatchResult:
    """Move files between folders, transferring their metadata.

    Metadata keys are removed from the source document and inserted into
    the destination document after all physical moves ran.

    Args:
        source_folder: Logical source folder.
        destination_folder: Logical destination folder.
        file_names: Names of files to move.

    Returns:
        BatchResult listing moved source names and per-file failures.
    """
    result = BatchResult()
    storage = _get_storage()
    sandbox = get_sandbox()
    try:
        source_dir = sandbox.resolve(source_folder)
    except FileStoreError as error:
        result.add_failure(normalize_folder(source_folder), error)
        return result
    try:
        destination_dir = sandbox.resolve(destination_folder, must_exist=False)
        storage.make_directory(storage.name_for(destination_dir))
    except FileStoreError as error:
        result.add_failure(normalize_folder(destination_folder), error)
        return result

    renames: dict[str, str] = {}
    for file_name in file_names:
        try:
            original_name = clean_file_name(file_name)
            source_path = _existing_file(source_dir, original_name)
            new_name = storage.get_available_name(
                storage.name_for(destination_dir / original_name),
            )
            storage.move(storage.name_for(source_path), new_name)
        except FileStoreError as error:
            result.add_failure(file_name, error)
            continue
        result.add_success(original_name)
        renames[original_name] = posixpath.basename(new_name)

    if renames:
        transferred: FolderMetadata = {}

        def take_entries(metadata: FolderMetadata) -> None:
            for original_name, new_name in renames.items():
                if original_name in metadata:
                    transferred[new_name] = metadata.pop(original_name)

        _write_metadata(source_folder, result, take_entries)
        if transferred:
            _write_metadata(
                destination_folder,
                result,
                lambda doc: doc.update(transferred),
            )

    logger.info(
        'Moved %d files from %s to %s',
        len(result.succeeded),
        source_dir,
        destination_dir,
    )
    return result


def rename_file(folder: str, old_name: str, new_name: str) -> Result[dict[str, str]]:
    """Rename a file inside its folder.

    If ``new_name`` is taken, the first free ``name (n).ext`` variant is
    used instead. The metadata key follows the file. When only the
    metadata update fails, the file keeps its new name and the result is
    Err(MetadataWriteFailure).

    Args:
        folder: Logical folder.
        old_name: Current name.
        new_name: Requested name.

    Returns:
        Ok with the ``newName`` actually used.
    """
    try:
        old_basename = clean_file_name(old_name)
        new_basename = clean_file_name(new_name)
        directory = get_sandbox().resolve(folder)
        old_path = _existing_file(directory, old_basename)
        if new_basename == old_basename:
            return Ok({'newName': old_basename})
        storage = _get_storage()
        target_name = storage.get_available_name(
            storage.name_for(directory / new_basename),
        )
        storage.move(storage.name_for(old_path), target_name)
        new_basename = posixpath.basename(target_name)

        def migrate_key(metadata: FolderMetadata) -> None:
            if old_basename in metadata:
                metadata[new_basename] = metadata.pop(old_basename)

        get_metadata_store().mutate(folder, migrate_key)
    except FileStoreError as error:
        return Err.from_error(error)

    logger.info('File renamed: %s -> %s', old_path, new_basename)
    return Ok({'newName': new_basename})


def create_folder(parent_folder: str, folder_name: str) -> Result[dict[str, str]]:
    """Create a sub-folder.

    Args:
        parent_folder: Logical parent folder.
        folder_name: Name of the new folder (single segment).

    Returns:
        Ok with the logical ``folder`` created; Err(Collision) if it exists.
    """
    parent = normalize_folder(parent_folder)
    logical = folder_name.strip()
    if parent != ROOT_FOLDER:
        logical = f'{parent}/{logical}'
    try:
        sandbox = get_sandbox()
        sandbox.resolve(parent)
        target = sandbox.resolve(logical, must_exist=False)
        if target.exists():
            raise CollisionError(f'Folder already exists: {logical}')
        storage = _get_storage()
        storage.make_directory(storage.name_for(target))
    except FileStoreError as error:
        return Err.from_error(error)

    logger.info('Folder created: %s', target)
    return Ok({'folder': normalize_folder(logical)})


def get_download_info(folder: str, file_name: str) -> Result[dict[str, Any]]:
    """Validate and locate a file for download.

    Args:
        folder: Logical folder.
        file_name: Name of the file.

    Returns:
        Ok with the physical ``path`` and ``mimeType``.
    """
    try:
        path = get_sandbox().resolve_file(folder, file_name, must_exist=True)
    except FileStoreError as error:
        return Err.from_error(error)
    return Ok({'path': path, 'mimeType': detect_mime_type(path.name)})


def _existing_file(directory: Path, basename: str) -> Path:
    path = directory / basename
    if not path.is_file():
        raise NotFoundError(f'{basename} does not exist.')
    return path


def _write_metadata(
    folder: str,
    result: BatchResult,
    transform: Callable[[FolderMetadata], object],
) -> None:
    try:
        get_metadata_store().mutate(folder, transform)
    except MetadataWriteError as error:
        logger.warning('Metadata not updated for folder: %s', folder)
        result.add_failure(normalize_folder(folder), error)

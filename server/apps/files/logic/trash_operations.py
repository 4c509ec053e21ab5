"""Business logic for trash (soft delete) operations.

Soft-deleted files are renamed into the trash directory under a unique
trash name and described by a record in the ``trash.json`` ledger. A
record is consumed when its item is restored or purged.
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Final

from django.conf import settings
from django.utils import timezone

from server.apps.files.exceptions import (
    CollisionError,
    FileStoreError,
    InvalidNameError,
    MetadataWriteError,
    NotFoundError,
    PathEscapeError,
)
from server.apps.files.infrastructure.documents import JsonDocumentStore
from server.apps.files.infrastructure.metadata import (
    UNKNOWN,
    FolderMetadata,
    get_metadata_store,
)
from server.apps.files.infrastructure.sandbox import (
    clean_file_name,
    get_sandbox,
    is_root_folder,
    is_valid_file_name,
    normalize_folder,
)
from server.apps.files.infrastructure.storage import (
    LocalFileStorage,
    get_file_storage,
    get_trash_storage,
)
from server.apps.files.logic.results import BatchResult, Err, Ok, Result
from server.apps.files.models import TrashItemType, TrashRecord

TRASH_DOCUMENT: Final = 'trash.json'

TrashLedger = list[dict[str, Any]]

logger = logging.getLogger(__name__)


def _get_trash_store() -> JsonDocumentStore:
    """Get the document store of the trash directory.

    Returns:
        JsonDocumentStore for ``settings.FILES_TRASH_DIR``.
    """
    return JsonDocumentStore(settings.FILES_TRASH_DIR)


def _generate_trash_name(basename: str, timestamp: int, taken: set[str]) -> str:
    """Generate a trash name that is not used yet.

    Args:
        basename: Original file or folder name (e.g., 'report.pdf').
        timestamp: Deletion time as a Unix timestamp.
        taken: Trash names already in use.

    Returns:
        ``basename_timestamp`` (e.g., 'report.pdf_1742000000'), with a
        ``-n`` counter appended when the same name was trashed within
        the same second.
    """
    candidate = f'{basename}_{timestamp}'
    counter = 1
    while candidate in taken:
        candidate = f'{basename}_{timestamp}-{counter}'
        counter += 1
    return candidate


def _taken_trash_names(
    ledger: TrashLedger,
    trash_storage: LocalFileStorage,
) -> set[str]:
    taken = {
        str(record.get('trashName'))
        for record in ledger
        if isinstance(record, dict)
    }
    try:
        directories, files = trash_storage.listdir('')
    except FileNotFoundError:
        return taken
    taken.update(directories)
    taken.update(files)
    return taken


def soft_delete_files(
    folder: str,
    file_names: Iterable[str],
    deleted_by: str,
) -> BatchResult:
    """Move files to the trash.

    Trash names are chosen and files moved while the ledger lock is
    held, so concurrent deletes of equal names never share a trash name.
    Files already absent from disk count as moved and get no record.
    Provenance is copied from the folder metadata into the trash record
    before the metadata key is removed. If the ledger cannot be written,
    the moved files are put back and reported as failed.

    Args:
        folder: Logical folder the files are deleted from.
        file_names: Names of files to delete.
        deleted_by: Acting identity.

    Returns:
        BatchResult listing moved names and per-file failures.
    """
    result = BatchResult()
    storage = get_file_storage()
    trash_storage = get_trash_storage()
    try:
        directory = get_sandbox().resolve(folder, must_exist=False)
        trash_storage.make_directory('')
    except FileStoreError as error:
        result.add_failure(normalize_folder(folder), error)
        return result

    metadata = get_metadata_store().get(folder)
    requested = list(file_names)
    moved: dict[str, str] = {}
    done: list[str] = []

    def trash_all(ledger: TrashLedger) -> None:
        taken = _taken_trash_names(ledger, trash_storage)
        for file_name in requested:
            try:
                basename = clean_file_name(file_name)
            except InvalidNameError as error:
                result.add_failure(file_name, error)
                continue

            file_path = directory / basename
            if file_path.is_dir():
                result.add_failure(
                    basename,
                    NotFoundError(f'{basename} is not a file.'),
                )
                continue
            if not file_path.exists():
                logger.info('File already absent, nothing to trash: %s', file_path)
                done.append(basename)
                continue

            timestamp = int(timezone.now().timestamp())
            trash_name = _generate_trash_name(basename, timestamp, taken)
            try:
                storage.move(
                    storage.name_for(file_path),
                    trash_name,
                    target=trash_storage,
                )
            except FileStoreError as error:
                result.add_failure(basename, error)
                continue

            taken.add(trash_name)
            attrs = metadata.get(basename)
            if not isinstance(attrs, dict):
                attrs = {}
            ledger.append(TrashRecord(
                type=TrashItemType.FILE,
                original_folder=str(directory),
                original_name=basename,
                trash_name=trash_name,
                trashed_at=timestamp,
                uploaded=attrs.get('uploaded') or UNKNOWN,
                uploader=attrs.get('uploader') or UNKNOWN,
                deleted_by=deleted_by or UNKNOWN,
            ).to_dict())
            moved[basename] = trash_name
            done.append(basename)
            logger.info('File moved to trash: %s -> %s', file_path, trash_name)

    try:
        _get_trash_store().mutate(TRASH_DOCUMENT, list, trash_all)
    except MetadataWriteError as error:
        logger.warning('Trash ledger not updated, returning %d files', len(moved))
        if not moved:
            result.add_failure(TRASH_DOCUMENT, error)
        for basename, trash_name in moved.items():
            _return_from_trash(trash_name, directory / basename, storage)
            result.add_failure(basename, error)
        done = [basename for basename in done if basename not in moved]

    for basename in done:
        result.add_success(basename)

    if done:
        removed = set(done)

        def drop_keys(folder_metadata: FolderMetadata) -> None:
            for name in removed:
                folder_metadata.pop(name, None)

        try:
            get_metadata_store().mutate(folder, drop_keys)
        except MetadataWriteError as error:
            result.add_failure(normalize_folder(folder), error)

    return result


def _return_from_trash(
    trash_name: str,
    destination: Path,
    storage: LocalFileStorage,
) -> None:
    try:
        get_trash_storage().move(
            trash_name,
            storage.name_for(destination),
            target=storage,
        )
    except FileStoreError:
        logger.error('File left in trash without a record: %s', trash_name)


def delete_folder(folder: str, deleted_by: str) -> Result[dict[str, str]]:
    """Remove an empty folder and remember it in the trash ledger.

    Args:
        folder: Logical folder to delete; never ``root``.
        deleted_by: Acting identity.

    Returns:
        Ok with the ``trashName`` of the folder record.
    """
    if is_root_folder(folder):
        return Err.from_error(PathEscapeError('Cannot delete the root folder.'))

    storage = get_file_storage()
    timestamp = int(timezone.now().timestamp())
    try:
        directory = get_sandbox().resolve(folder)
        storage.delete(storage.name_for(directory))
    except FileStoreError as error:
        return Err.from_error(error)

    def append_record(ledger: TrashLedger) -> TrashRecord:
        record = TrashRecord(
            type=TrashItemType.FOLDER,
            original_folder=str(directory.parent),
            original_name=directory.name,
            trash_name=_generate_trash_name(
                directory.name,
                timestamp,
                _taken_trash_names(ledger, get_trash_storage()),
            ),
            trashed_at=timestamp,
            deleted_by=deleted_by or UNKNOWN,
        )
        ledger.append(record.to_dict())
        return record

    try:
        record = _get_trash_store().mutate(TRASH_DOCUMENT, list, append_record)
    except MetadataWriteError as error:
        logger.warning('Trash ledger not updated, recreating folder: %s', directory)
        storage.make_directory(storage.name_for(directory))
        return Err.from_error(error)

    logger.info('Folder deleted: %s (%s)', directory, record.trash_name)
    return Ok({'trashName': record.trash_name})


def list_trash() -> list[TrashRecord]:
    """List all trash records.

    Returns:
        Records in ledger order with missing provenance set to 'Unknown'.
    """
    ledger = _get_trash_store().read(TRASH_DOCUMENT, list)
    return [
        TrashRecord.from_dict(record)
        for record in ledger
        if isinstance(record, dict)
    ]


def get_trash_record(trash_name: str) -> TrashRecord:
    """Get a trash record by its trash name.

    Args:
        trash_name: Unique trash name.

    Returns:
        TrashRecord instance.

    Raises:
        NotFoundError: If no record has this trash name.
    """
    for record in list_trash():
        if record.trash_name == trash_name:
            return record
    raise NotFoundError(f'No trash record found for {trash_name}.')


def restore_files(trash_names: Iterable[str]) -> BatchResult:
    """Restore trashed items to where they were deleted from.

    A restore never renames: if the original path is occupied, that item
    fails with Collision and its record is kept. The ledger lock is held
    for the whole batch.

    Args:
        trash_names: Trash names of the items to restore.

    Returns:
        BatchResult listing restored original names and failures.
    """
    result = BatchResult()

    def restore_all(ledger: TrashLedger) -> None:
        for raw_name in trash_names:
            trash_name = raw_name.strip()
            try:
                index = _find_record(ledger, trash_name)
                record = TrashRecord.from_dict(ledger[index])
                _restore_one(record, result)
            except FileStoreError as error:
                result.add_failure(trash_name, error)
                continue
            del ledger[index]
            result.add_success(record.original_name)

    try:
        _get_trash_store().mutate(TRASH_DOCUMENT, list, restore_all)
    except MetadataWriteError as error:
        result.add_failure(TRASH_DOCUMENT, error)
    return result


def _find_record(ledger: TrashLedger, trash_name: str) -> int:
    if not is_valid_file_name(trash_name):
        raise InvalidNameError(f'{trash_name} has an invalid format.')
    for index, record in enumerate(ledger):
        if isinstance(record, dict) and record.get('trashName') == trash_name:
            return index
    raise NotFoundError(f'No trash record found for {trash_name}.')


def _restore_one(record: TrashRecord, result: BatchResult) -> None:
    if not record.original_folder or not record.original_name:
        raise NotFoundError(f'Incomplete trash record for {record.trash_name}.')

    sandbox = get_sandbox()
    storage = get_file_storage()
    folder = sandbox.to_logical(record.original_folder)
    destination_dir = sandbox.resolve(folder, must_exist=False)
    destination = destination_dir / clean_file_name(record.original_name)

    if destination.exists():
        raise CollisionError(
            f'Already exists at destination: {record.original_name}.',
        )

    if record.type == TrashItemType.FOLDER:
        storage.make_directory(storage.name_for(destination))
        logger.info('Folder restored: %s', destination)
        return

    trash_storage = get_trash_storage()
    if not Path(trash_storage.path(record.trash_name)).is_file():
        raise NotFoundError(f'Trash file not found: {record.trash_name}.')
    trash_storage.move(
        record.trash_name,
        storage.name_for(destination),
        target=storage,
    )
    logger.info('File restored: %s -> %s', record.trash_name, destination)

    def add_entry(metadata: FolderMetadata) -> None:
        metadata[record.original_name] = {
            'uploaded': record.uploaded,
            'uploader': record.uploader,
        }

    try:
        get_metadata_store().mutate(folder, add_entry)
    except MetadataWriteError as error:
        result.add_failure(folder, error)


def purge_trash(trash_names: Iterable[str]) -> BatchResult:
    """Permanently delete trashed items.

    A record whose physical file is already gone is still removed.

    Args:
        trash_names: Trash names of the items to purge.

    Returns:
        BatchResult listing purged trash names and failures.
    """
    result = BatchResult()
    trash_storage = get_trash_storage()

    def purge_all(ledger: TrashLedger) -> None:
        for raw_name in trash_names:
            trash_name = raw_name.strip()
            try:
                index = _find_record(ledger, trash_name)
                record = TrashRecord.from_dict(ledger[index])
                if record.type == TrashItemType.FILE:
                    trash_storage.delete(trash_name)
            except FileStoreError as error:
                result.add_failure(trash_name, error)
                continue
            del ledger[index]
            result.add_success(trash_name)
            logger.info('Trash item purged: %s', trash_name)

    try:
        _get_trash_store().mutate(TRASH_DOCUMENT, list, purge_all)
    except MetadataWriteError as error:
        result.add_failure(TRASH_DOCUMENT, error)
    return result


def empty_trash() -> BatchResult:
    """Permanently delete everything in the trash.

    Returns:
        BatchResult listing purged trash names and failures.
    """
    trash_names = [record.trash_name for record in list_trash()]
    result = purge_trash(trash_names)
    logger.info('Trash emptied: %d items purged', len(result.succeeded))
    return result

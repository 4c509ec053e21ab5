"""Business logic for zip bundling and extraction."""

import logging
import os
import tempfile
import zipfile
from collections.abc import Iterable
from pathlib import Path
from typing import Final

from server.apps.files.exceptions import (
    FileStoreError,
    InvalidNameError,
    MetadataWriteError,
    NotFoundError,
    PathEscapeError,
    StorageIOError,
)
from server.apps.files.infrastructure.metadata import (
    FolderMetadata,
    get_metadata_store,
)
from server.apps.files.infrastructure.sandbox import (
    clean_file_name,
    get_sandbox,
    is_valid_file_name,
    normalize_folder,
)
from server.apps.files.infrastructure.storage import get_file_storage
from server.apps.files.logic.results import BatchResult, Err, Ok, Result

_ZIP_SUFFIX: Final = '.zip'

logger = logging.getLogger(__name__)


def create_zip_archive(folder: str, file_names: Iterable[str]) -> Result[dict[str, Path]]:
    """Bundle files of one folder into a temporary zip archive.

    Names that fail validation or do not exist are skipped. Every file
    is stored under its bare basename.

    Args:
        folder: Logical folder holding the files.
        file_names: Names of files to include.

    Returns:
        Ok with ``zipPath`` of the temporary archive; the caller removes
        it once sent. Err(NotFound) when no file qualifies.
    """
    try:
        directory = get_sandbox().resolve(folder)
    except FileStoreError as error:
        return Err.from_error(error)

    files_to_zip: list[Path] = []
    for file_name in file_names:
        try:
            basename = clean_file_name(file_name)
        except InvalidNameError:
            logger.warning('Skipping invalid name for archive: %s', file_name)
            continue
        file_path = directory / basename
        if file_path.is_file():
            files_to_zip.append(file_path)

    if not files_to_zip:
        return Err.from_error(NotFoundError('No valid files found to zip.'))

    descriptor, temp_name = tempfile.mkstemp(suffix=_ZIP_SUFFIX, prefix='bundle-')
    os.close(descriptor)
    zip_path = Path(temp_name)
    try:
        with zipfile.ZipFile(zip_path, 'w', zipfile.ZIP_DEFLATED) as archive:
            for file_path in files_to_zip:
                archive.write(file_path, arcname=file_path.name)
    except (OSError, zipfile.BadZipFile):
        logger.exception('Could not create zip archive: %s', zip_path)
        zip_path.unlink(missing_ok=True)
        return Err.from_error(
            StorageIOError('Could not create zip archive.'),
        )

    logger.info('Created archive %s with %d files', zip_path, len(files_to_zip))
    return Ok({'zipPath': zip_path})


def extract_zip_archives(folder: str, archive_names: Iterable[str]) -> BatchResult:
    """Extract zip archives into the folder that holds them.

    Every entry is checked before writing: an entry that would land
    outside the folder is rejected on its own and the remaining entries
    are still extracted. Extracted files inherit the archive's metadata
    entry, if it has one.

    Args:
        folder: Logical folder holding the archives.
        archive_names: Archive names; names without ``.zip`` are ignored.

    Returns:
        BatchResult listing extracted file basenames and failures.
    """
    result = BatchResult()
    try:
        directory = get_sandbox().resolve(folder)
    except FileStoreError as error:
        result.add_failure(normalize_folder(folder), error)
        return result

    source_metadata = get_metadata_store().get(folder)
    inherited: FolderMetadata = {}

    for archive_name in archive_names:
        try:
            basename = clean_file_name(archive_name)
        except InvalidNameError as error:
            result.add_failure(archive_name, error)
            continue
        if not basename.lower().endswith(_ZIP_SUFFIX):
            continue
        archive_path = directory / basename
        if not archive_path.is_file():
            result.add_failure(
                basename,
                NotFoundError(f'{basename} does not exist in folder.'),
            )
            continue

        try:
            extracted = _extract_archive(archive_path, directory, result)
        except StorageIOError as error:
            result.add_failure(basename, error)
            continue

        for name in extracted:
            result.add_success(name)
        if isinstance(source_metadata.get(basename), dict):
            for name in extracted:
                inherited[name] = dict(source_metadata[basename])

    if inherited:
        try:
            get_metadata_store().mutate(
                folder,
                lambda metadata: metadata.update(inherited),
            )
        except MetadataWriteError as error:
            result.add_failure(normalize_folder(folder), error)

    return result


def _extract_archive(
    archive_path: Path,
    target_dir: Path,
    result: BatchResult,
) -> list[str]:
    """Extract one archive, entry by entry.

    Args:
        archive_path: Zip file to extract.
        target_dir: Canonical folder to extract into.
        result: Batch result collecting rejected entries.

    Returns:
        Basenames of the extracted files.

    Raises:
        StorageIOError: If the archive cannot be opened.
    """
    extracted: list[str] = []
    try:
        archive = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as error:
        logger.exception('Could not open archive: %s', archive_path)
        raise StorageIOError(
            f'Could not open {archive_path.name} as a zip file.',
        ) from error

    storage = get_file_storage(allow_overwrite=True)
    with archive:
        for member in archive.infolist():
            try:
                destination = _safe_destination(target_dir, member.filename)
                if member.is_dir():
                    storage.make_directory(storage.name_for(destination))
                    continue
                with archive.open(member) as source:
                    storage.save(storage.name_for(destination), source)
            except (InvalidNameError, PathEscapeError) as error:
                logger.warning(
                    'Rejected archive entry %s in %s',
                    member.filename,
                    archive_path,
                )
                result.add_failure(member.filename, error)
                continue
            except StorageIOError as error:
                result.add_failure(member.filename, error)
                continue
            except (OSError, zipfile.BadZipFile):
                logger.exception('Failed to extract entry: %s', member.filename)
                result.add_failure(
                    member.filename,
                    StorageIOError(f'Failed to extract {member.filename}.'),
                )
                continue
            extracted.append(destination.name)

    logger.info('Extracted %d entries from %s', len(extracted), archive_path)
    return extracted


def _safe_destination(target_dir: Path, entry_name: str) -> Path:
    """Compute where an archive entry may be written.

    Args:
        target_dir: Canonical extraction folder.
        entry_name: Entry name as stored in the archive.

    Returns:
        Path inside target_dir.

    Raises:
        PathEscapeError: If the entry is absolute, has a ``..`` segment
            or resolves outside target_dir.
        InvalidNameError: If the entry's basename is not a valid file name.
    """
    normalized = entry_name.replace('\\', '/')
    parts = [part for part in normalized.split('/') if part not in {'', '.'}]
    if normalized.startswith('/') or '..' in parts or not parts:
        raise PathEscapeError(f'Rejected unsafe archive entry: {entry_name}')

    if not is_valid_file_name(parts[-1]):
        raise InvalidNameError(f'{parts[-1]!r} has an invalid name.')

    candidate = Path(os.path.realpath(target_dir.joinpath(*parts)))
    root = str(target_dir)
    if os.path.commonpath([root, str(candidate)]) != root or candidate == target_dir:
        raise PathEscapeError(f'Rejected unsafe archive entry: {entry_name}')
    return candidate

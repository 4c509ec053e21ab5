"""Per-folder metadata documents and metadata helpers.

Each logical folder owns one JSON document mapping file basenames to
their attributes::

    {
        "report.pdf": {
            "uploaded": "03/14/25  09:26AM",
            "modified": "03/15/25  10:02AM",
            "uploader": "alice",
            "tags": [{"name": "work", "color": "#ff0000"}]
        }
    }

Documents are created lazily on first write and never deleted.
"""

import logging
import mimetypes
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any, Final, TypeVar, final

from django.conf import settings
from django.utils import timezone

from server.apps.files.infrastructure.documents import JsonDocumentStore
from server.apps.files.infrastructure.sandbox import (
    ROOT_FOLDER,
    is_root_folder,
    normalize_folder,
)

_ResultT = TypeVar('_ResultT')

FolderMetadata = dict[str, dict[str, Any]]

_METADATA_SUFFIX: Final = '_metadata.json'
_KEY_SEPARATORS_RE: Final = re.compile(r'[/\\ ]')

# Placeholder for provenance that was never recorded
UNKNOWN: Final = 'Unknown'

_KIB: Final = 1024
_MIB: Final = _KIB * 1024
_GIB: Final = _MIB * 1024

logger = logging.getLogger(__name__)


def metadata_document_name(folder: str) -> str:
    """Derive the metadata document file name for a logical folder.

    Args:
        folder: Logical folder (e.g., 'photos/2024').

    Returns:
        Document file name (e.g., 'photos-2024_metadata.json'), or
        'root_metadata.json' for the root.
    """
    if is_root_folder(folder):
        return ROOT_FOLDER + _METADATA_SUFFIX
    key = _KEY_SEPARATORS_RE.sub('-', normalize_folder(folder))
    return key + _METADATA_SUFFIX


@final
class MetadataStore:
    """Key-value view of folder metadata documents.

    ``get`` never fails for a folder without a document; ``mutate`` runs
    a locked read-merge-write on one folder's document.
    """

    def __init__(self, documents: JsonDocumentStore) -> None:
        """Initialize metadata store.

        Args:
            documents: Store holding the JSON documents.
        """
        self._documents = documents

    def get(self, folder: str) -> FolderMetadata:
        """Read the metadata of a folder.

        Args:
            folder: Logical folder.

        Returns:
            Mapping of basename to attributes; empty if no document.
        """
        return self._documents.read(metadata_document_name(folder), dict)

    def mutate(
        self,
        folder: str,
        transform: Callable[[FolderMetadata], _ResultT],
    ) -> _ResultT:
        """Change the metadata of a folder under its document lock.

        Args:
            folder: Logical folder.
            transform: Callable changing the mapping in place.

        Returns:
            Whatever the transform returns.

        Raises:
            MetadataWriteError: If the document cannot be persisted.
        """
        return self._documents.mutate(
            metadata_document_name(folder),
            dict,
            transform,
        )


def get_metadata_store() -> MetadataStore:
    """Build the metadata store for the configured metadata directory.

    Returns:
        MetadataStore backed by ``settings.FILES_METADATA_DIR``.
    """
    return MetadataStore(get_metadata_documents())


def get_metadata_documents() -> JsonDocumentStore:
    """Get the document store of the metadata directory.

    Returns:
        JsonDocumentStore for ``settings.FILES_METADATA_DIR``.
    """
    return JsonDocumentStore(settings.FILES_METADATA_DIR)


def format_timestamp(moment: datetime | None = None) -> str:
    """Format a moment the way metadata stamps are stored.

    Args:
        moment: Aware datetime; defaults to now.

    Returns:
        Local time formatted with ``settings.FILES_DATE_TIME_FORMAT``.
    """
    if moment is None:
        moment = timezone.now()
    return timezone.localtime(moment).strftime(settings.FILES_DATE_TIME_FORMAT)


def format_mtime(mtime: float) -> str:
    """Format a filesystem modification time.

    Args:
        mtime: Seconds since the epoch as returned by ``os.stat``.

    Returns:
        Formatted local time.
    """
    moment = datetime.fromtimestamp(mtime, tz=timezone.get_current_timezone())
    return format_timestamp(moment)


def format_file_size(size_bytes: int) -> str:
    """Render a byte count for listings.

    Args:
        size_bytes: File size in bytes.

    Returns:
        Size like '1.5 GB', '2.0 MB', '3.1 KB' or '512 bytes'.
    """
    if size_bytes >= _GIB:
        return f'{size_bytes / _GIB:.1f} GB'
    if size_bytes >= _MIB:
        return f'{size_bytes / _MIB:.1f} MB'
    if size_bytes >= _KIB:
        return f'{size_bytes / _KIB:.1f} KB'
    return f'{size_bytes:,} bytes'


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from a file name.

    Args:
        filename: Filename with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return 'application/octet-stream'
    return mime_type

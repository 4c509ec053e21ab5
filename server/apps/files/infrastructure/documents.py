"""Whole-file JSON documents with per-document locking.

Every document (folder metadata, trash ledger, share ledger, global tags)
is a single pretty-printed UTF-8 JSON file. Mutations follow one
discipline: take an exclusive lock scoped to the document, read it,
apply the change in memory, write a temporary file next to it and
atomically replace the original.
"""

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Final, TypeVar, final

from django.core.files import locks

from server.apps.files.exceptions import MetadataWriteError

_DocumentT = TypeVar('_DocumentT', dict[str, Any], list[Any])
_ResultT = TypeVar('_ResultT')

_LOCK_SUFFIX: Final = '.lock'
_JSON_INDENT: Final = 4

logger = logging.getLogger(__name__)


@final
class JsonDocumentStore:
    """Directory of JSON documents addressed by file name.

    Writers to the same document are serialized through an advisory lock
    on a ``<name>.lock`` side file; writers to different documents never
    block each other.
    """

    def __init__(self, directory: Path | str) -> None:
        """Initialize store.

        Args:
            directory: Directory holding the documents.
        """
        self._directory = Path(directory)

    def path_for(self, name: str) -> Path:
        """Get the physical path of a document.

        Args:
            name: Document file name (e.g., 'trash.json').

        Returns:
            Path of the document.
        """
        return self._directory / name

    def read(
        self,
        name: str,
        default: Callable[[], _DocumentT],
    ) -> _DocumentT:
        """Read a document without locking.

        Readers never see a partial document because writes replace the
        file atomically.

        Args:
            name: Document file name.
            default: Factory for the empty document ({} or []).

        Returns:
            Parsed document, or a fresh empty one when the file is missing
            or does not hold the expected JSON type.
        """
        path = self.path_for(name)
        empty = default()
        try:
            with path.open(encoding='utf-8') as document_file:
                data = json.load(document_file)
        except FileNotFoundError:
            return empty
        except (OSError, ValueError):
            logger.warning('Unreadable document, using empty: %s', path)
            return empty
        if not isinstance(data, type(empty)):
            logger.warning('Unexpected document type, using empty: %s', path)
            return empty
        return data

    def mutate(
        self,
        name: str,
        default: Callable[[], _DocumentT],
        transform: Callable[[_DocumentT], _ResultT],
    ) -> _ResultT:
        """Apply a read-merge-write change to a document.

        The transform receives the current document and changes it in
        place; the whole document is then rewritten. The lock is held for
        the entire cycle, so concurrent mutations never lose each other's
        changes.

        Args:
            name: Document file name.
            default: Factory for the empty document.
            transform: Callable changing the document in place.

        Returns:
            Whatever the transform returns.

        Raises:
            MetadataWriteError: If the document cannot be persisted.
        """
        with self.locked(name):
            document = self.read(name, default)
            result = transform(document)
            self.write(name, document)
        return result

    def write(self, name: str, document: dict[str, Any] | list[Any]) -> None:
        """Atomically replace a document.

        Callers that read before writing must hold :meth:`locked`.

        Args:
            name: Document file name.
            document: Full document to persist.

        Raises:
            MetadataWriteError: If the document cannot be persisted.
        """
        path = self.path_for(name)
        temp_path = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                'w',
                encoding='utf-8',
                dir=self._directory,
                prefix=f'.{name}.',
                suffix='.tmp',
                delete=False,
            ) as temp_file:
                temp_path = temp_file.name
                json.dump(
                    document,
                    temp_file,
                    indent=_JSON_INDENT,
                    ensure_ascii=False,
                )
                temp_file.flush()
                os.fsync(temp_file.fileno())
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError) as error:
            logger.exception('Failed to write document: %s', path)
            if temp_path is not None:
                Path(temp_path).unlink(missing_ok=True)
            raise MetadataWriteError(
                f'Failed to write {name}.',
            ) from error
        logger.debug('Document written: %s', path)

    @contextmanager
    def locked(self, name: str) -> Iterator[None]:
        """Hold the exclusive lock of one document.

        Args:
            name: Document file name.

        Yields:
            Nothing; the lock is held while the block runs.

        Raises:
            MetadataWriteError: If the lock file cannot be opened.
        """
        lock_path = self.path_for(name + _LOCK_SUFFIX)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            lock_file = lock_path.open('ab')
        except OSError as error:
            logger.exception('Failed to open lock file: %s', lock_path)
            raise MetadataWriteError(f'Failed to lock {name}.') from error
        with lock_file:
            locks.lock(lock_file, locks.LOCK_EX)
            try:
                yield
            finally:
                locks.unlock(lock_file)

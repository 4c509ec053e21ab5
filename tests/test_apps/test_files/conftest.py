"""Shared fixtures for files app tests."""

import pytest

from server.apps.files.infrastructure.metadata import (
    get_metadata_documents,
    get_metadata_store,
    metadata_document_name,
)
from server.apps.files.infrastructure.sandbox import get_sandbox


@pytest.fixture(autouse=True)
def file_store(settings, tmp_path):
    """Point the file store at a fresh temporary tree.

    Returns:
        Canonical storage root.
    """
    files_root = tmp_path / 'uploads'
    files_root.mkdir()
    settings.FILES_ROOT = files_root
    settings.FILES_TRASH_DIR = tmp_path / 'trash'
    settings.FILES_METADATA_DIR = tmp_path / 'metadata'
    settings.PASSWORD_HASHERS = [
        'django.contrib.auth.hashers.MD5PasswordHasher',
    ]
    return get_sandbox().root


@pytest.fixture
def metadata_store():
    """Metadata store of the temporary tree.

    Returns:
        MetadataStore instance.
    """
    return get_metadata_store()


@pytest.fixture
def make_file(file_store):
    """Factory writing a file below the storage root.

    Returns:
        Callable taking a relative path and content, returning the path.
    """
    def factory(relative_path, content=b'test file content'):
        path = file_store / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return factory


@pytest.fixture
def break_metadata():
    """Factory making a folder's metadata document unwritable.

    The document path is replaced by a directory, so reads fall back to
    empty metadata and every write fails.

    Returns:
        Callable taking a logical folder.
    """
    def factory(folder):
        path = get_metadata_documents().path_for(metadata_document_name(folder))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.unlink(missing_ok=True)
        path.mkdir()

    return factory

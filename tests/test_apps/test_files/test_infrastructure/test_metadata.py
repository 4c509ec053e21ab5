"""Tests for metadata utilities."""

from datetime import UTC, datetime

import pytest

from server.apps.files.infrastructure.metadata import (
    detect_mime_type,
    format_file_size,
    format_timestamp,
    get_metadata_documents,
    metadata_document_name,
)


def test_detect_mime_type():
    """Test MIME type detection from filename."""
    assert detect_mime_type('test.pdf') == 'application/pdf'
    assert detect_mime_type('test.txt') == 'text/plain'
    assert detect_mime_type('test.jpg') == 'image/jpeg'
    assert detect_mime_type('test.png') == 'image/png'


def test_detect_mime_type_unknown():
    """Test MIME type detection for unknown extension."""
    assert detect_mime_type('test.unknown') == 'application/octet-stream'


@pytest.mark.parametrize(('folder', 'expected'), [
    ('root', 'root_metadata.json'),
    ('', 'root_metadata.json'),
    ('photos', 'photos_metadata.json'),
    ('photos/2024', 'photos-2024_metadata.json'),
    ('/summer trip\\day 1/', 'summer-trip-day-1_metadata.json'),
])
def test_metadata_document_name(folder, expected):
    """Test folder to document name mapping."""
    assert metadata_document_name(folder) == expected


@pytest.mark.parametrize(('size_bytes', 'expected'), [
    (0, '0 bytes'),
    (512, '512 bytes'),
    (1536, '1.5 KB'),
    (2 * 1024 * 1024, '2.0 MB'),
    (3 * 1024 ** 3, '3.0 GB'),
])
def test_format_file_size(size_bytes, expected):
    """Test human readable sizes."""
    assert format_file_size(size_bytes) == expected


def test_format_timestamp():
    """Test stamps use the configured format in New York time."""
    moment = datetime(2025, 3, 14, 13, 26, tzinfo=UTC)

    assert format_timestamp(moment) == '03/14/25  09:26AM'


class TestMetadataStore:
    """Tests for MetadataStore."""

    def test_get_without_document(self, metadata_store):
        """Test unknown folder has empty metadata."""
        assert metadata_store.get('nowhere') == {}

    def test_mutate_and_get(self, metadata_store):
        """Test mutations are visible to later reads."""
        metadata_store.mutate(
            'photos/2024',
            lambda metadata: metadata.update({'a.jpg': {'uploader': 'alice'}}),
        )

        assert metadata_store.get('photos/2024') == {
            'a.jpg': {'uploader': 'alice'},
        }
        assert get_metadata_documents().path_for(
            'photos-2024_metadata.json',
        ).is_file()

    def test_folders_are_independent(self, metadata_store):
        """Test each folder has its own document."""
        metadata_store.mutate('a', lambda metadata: metadata.update({'x': {}}))

        assert metadata_store.get('b') == {}
        assert metadata_store.get('root') == {}

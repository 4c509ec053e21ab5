"""Tests for file store records."""

from server.apps.files.models import (
    FileEntry,
    ShareLink,
    Tag,
    TrashItemType,
    TrashRecord,
)


class TestTrashRecord:
    """Tests for TrashRecord."""

    def test_from_dict_fills_unknown(self):
        """Test records written without provenance read as Unknown."""
        record = TrashRecord.from_dict({
            'originalFolder': '/srv/uploads',
            'originalName': 'a.txt',
            'trashName': 'a.txt_100',
            'trashedAt': 100,
        })

        assert record.type == TrashItemType.FILE
        assert record.uploaded == 'Unknown'
        assert record.uploader == 'Unknown'
        assert record.deleted_by == 'Unknown'

    def test_to_dict_uses_ledger_keys(self):
        """Test serialization uses the camelCase ledger keys."""
        record = TrashRecord(
            original_folder='/srv/uploads',
            original_name='old',
            trash_name='old_100',
            trashed_at=100,
            type=TrashItemType.FOLDER,
            deleted_by='bob',
        )

        assert record.to_dict() == {
            'type': 'folder',
            'originalFolder': '/srv/uploads',
            'originalName': 'old',
            'trashName': 'old_100',
            'trashedAt': 100,
            'uploaded': 'Unknown',
            'uploader': 'Unknown',
            'deletedBy': 'bob',
        }


class TestShareLink:
    """Tests for ShareLink."""

    def test_ledger_entry(self):
        """Test the password hash is stored under 'password'."""
        link = ShareLink.from_dict('abc', {
            'folder': 'docs',
            'file': 'a.txt',
            'expires': 200,
            'password': 'md5$salt$hash',
        })

        assert link.is_protected
        assert link.to_dict()['password'] == 'md5$salt$hash'

    def test_is_expired(self):
        """Test expiry is strictly after the expires moment."""
        link = ShareLink(token='abc', folder='root', file='a.txt', expires=200)

        assert not link.is_expired(200)
        assert link.is_expired(201)


def test_file_entry_to_dict():
    """Test listing entries serialize with their tags."""
    entry = FileEntry(
        name='a.txt',
        size='5 bytes',
        size_bytes=5,
        modified='03/14/25  09:26AM',
        tags=(Tag('work', '#f00'),),
    )

    assert entry.to_dict()['tags'] == [{'name': 'work', 'color': '#f00'}]
    assert entry.to_dict()['uploader'] == 'Unknown'

"""Tests for file operations business logic."""

from io import BytesIO

from server.apps.files.exceptions import ErrorKind
from server.apps.files.logic import file_operations
from server.apps.files.logic.file_operations import (
    copy_files,
    create_file,
    create_folder,
    get_download_info,
    list_directory,
    move_files,
    rename_file,
    save_file,
)


class TestListDirectory:
    """Tests for list_directory function."""

    def test_list_merges_metadata(self, make_file, metadata_store):
        """Test listing combines disk attributes with metadata."""
        make_file('b.txt', b'12345')
        make_file('a.txt')
        metadata_store.mutate('root', lambda metadata: metadata.update({
            'b.txt': {
                'uploaded': '03/14/25  09:26AM',
                'uploader': 'alice',
                'tags': [{'name': 'work', 'color': '#f00'}],
            },
        }))

        result = list_directory('root')

        assert result.ok
        files = result.payload['files']
        assert [entry.name for entry in files] == ['a.txt', 'b.txt']
        assert files[0].uploader == 'Unknown'
        assert files[0].uploaded == 'Unknown'
        assert files[1].uploader == 'alice'
        assert files[1].size_bytes == 5
        assert files[1].size == '5 bytes'
        assert files[1].tags[0].name == 'work'
        assert result.payload['globalTags'] == []

    def test_list_skips_hidden_and_folders(self, make_file, file_store):
        """Test hidden files and sub-folders are not listed."""
        make_file('.hidden')
        make_file('visible.txt')
        (file_store / 'sub').mkdir()

        result = list_directory('root')

        assert [entry.name for entry in result.payload['files']] == ['visible.txt']

    def test_list_missing_folder(self):
        """Test listing a missing folder is NotFound."""
        result = list_directory('missing')

        assert not result.ok
        assert result.kind == ErrorKind.NOT_FOUND

    def test_list_escape(self):
        """Test listing outside the root is refused."""
        result = list_directory('../..')

        assert not result.ok
        assert result.kind == ErrorKind.PATH_ESCAPE

    def test_list_ignores_malformed_metadata(self, make_file, metadata_store):
        """Test a non-object metadata value lists as Unknown."""
        make_file('a.txt')
        metadata_store.mutate('root', lambda metadata: metadata.update({
            'a.txt': 'not an object',
        }))

        result = list_directory('root')

        assert result.ok
        assert result.payload['files'][0].uploader == 'Unknown'

    def test_list_unreadable_folder(self, monkeypatch):
        """Test a folder that cannot be scanned is an IOFailure."""
        def deny(path):
            raise PermissionError(13, 'Permission denied', str(path))

        monkeypatch.setattr(file_operations.os, 'scandir', deny)

        result = list_directory('root')

        assert not result.ok
        assert result.kind == ErrorKind.IO_FAILURE


class TestCreateFile:
    """Tests for create_file function."""

    def test_create_file(self, file_store, metadata_store):
        """Test empty file and metadata entry are created."""
        result = create_file('docs', 'new.txt', 'alice')

        assert result.ok
        assert (file_store / 'docs' / 'new.txt').read_bytes() == b''
        entry = metadata_store.get('docs')['new.txt']
        assert entry['uploader'] == 'alice'
        assert entry['uploaded']

    def test_create_existing_file(self, make_file):
        """Test creating an existing file is a Collision."""
        make_file('taken.txt', b'keep')

        result = create_file('root', 'taken.txt', 'alice')

        assert not result.ok
        assert result.kind == ErrorKind.COLLISION

    def test_create_invalid_name(self):
        """Test an unusable name is InvalidName."""
        result = create_file('root', '..', 'alice')

        assert result.kind == ErrorKind.INVALID_NAME


class TestSaveFile:
    """Tests for save_file function."""

    def test_save_new_file(self, file_store, metadata_store):
        """Test new upload gets uploaded and modified stamps."""
        result = save_file('root', 'up.bin', BytesIO(b'data'), actor='bob')

        assert result.payload == {'name': 'up.bin', 'size': 4}
        assert (file_store / 'up.bin').read_bytes() == b'data'
        entry = metadata_store.get('root')['up.bin']
        assert entry['uploader'] == 'bob'
        assert entry['uploaded'] == entry['modified']

    def test_save_existing_keeps_uploaded(self, make_file, metadata_store):
        """Test overwrite keeps the original uploaded stamp."""
        make_file('doc.txt')
        metadata_store.mutate('root', lambda metadata: metadata.update({
            'doc.txt': {'uploaded': 'long ago', 'uploader': 'alice'},
        }))

        save_file('root', 'doc.txt', b'new', actor='bob', uploader='carol')

        entry = metadata_store.get('root')['doc.txt']
        assert entry['uploaded'] == 'long ago'
        assert entry['uploader'] == 'carol'
        assert entry['modified'] != 'long ago'


class TestCopyFiles:
    """Tests for copy_files function."""

    def test_copy_with_unique_name(self, make_file, file_store, metadata_store):
        """Test clashing copies get the first free numbered name."""
        make_file('src/a.txt', b'new')
        make_file('dst/a.txt', b'old')
        make_file('dst/a (1).txt', b'older')
        metadata_store.mutate('src', lambda metadata: metadata.update({
            'a.txt': {'uploader': 'alice'},
        }))

        result = copy_files('src', 'dst', ['a.txt'])

        assert result.ok
        assert result.succeeded == ['a.txt']
        assert (file_store / 'dst' / 'a (2).txt').read_bytes() == b'new'
        assert (file_store / 'src' / 'a.txt').exists()
        assert metadata_store.get('dst')['a (2).txt'] == {'uploader': 'alice'}
        assert 'a.txt' in metadata_store.get('src')

    def test_copy_partial_failure(self, make_file):
        """Test missing files fail without stopping the batch."""
        make_file('src/a.txt')

        result = copy_files('src', 'dst', ['a.txt', 'missing.txt'])

        assert result.partial
        assert result.succeeded == ['a.txt']
        assert result.failed[0].item == 'missing.txt'
        assert result.failed[0].kind == ErrorKind.NOT_FOUND

    def test_copy_from_missing_folder(self):
        """Test a missing source folder fails the whole batch."""
        result = copy_files('nowhere', 'dst', ['a.txt'])

        assert not result.ok
        assert result.succeeded == []
        assert result.failed[0].item == 'nowhere'


class TestMoveFiles:
    """Tests for move_files function."""

    def test_move_transfers_metadata(self, make_file, file_store, metadata_store):
        """Test metadata key leaves the source and appears at destination."""
        make_file('a/x.txt')
        metadata_store.mutate('a', lambda metadata: metadata.update({
            'x.txt': {'uploader': 'alice', 'uploaded': 'T'},
        }))

        result = move_files('a', 'b', ['x.txt'])

        assert result.ok
        assert not (file_store / 'a' / 'x.txt').exists()
        assert (file_store / 'b' / 'x.txt').exists()
        assert 'x.txt' not in metadata_store.get('a')
        assert metadata_store.get('b')['x.txt'] == {
            'uploader': 'alice',
            'uploaded': 'T',
        }

    def test_move_with_clash(self, make_file, file_store, metadata_store):
        """Test clashing move is renamed and metadata follows."""
        make_file('a/x.txt', b'moved')
        make_file('b/x.txt', b'stays')
        metadata_store.mutate('a', lambda metadata: metadata.update({
            'x.txt': {'uploader': 'alice'},
        }))

        move_files('a', 'b', ['x.txt'])

        assert (file_store / 'b' / 'x.txt').read_bytes() == b'stays'
        assert (file_store / 'b' / 'x (1).txt').read_bytes() == b'moved'
        assert metadata_store.get('b')['x (1).txt'] == {'uploader': 'alice'}

    def test_move_traversal_name(self, make_file, file_store):
        """Test directory components of names are ignored."""
        make_file('a/passwd')

        result = move_files('a', 'b', ['../../passwd'])

        assert result.succeeded == ['passwd']
        assert (file_store / 'b' / 'passwd').exists()

    def test_move_destination_metadata_unwritable(
        self,
        make_file,
        file_store,
        metadata_store,
        break_metadata,
    ):
        """Test the file stays moved when destination metadata fails."""
        make_file('a/x.txt', b'moved')
        metadata_store.mutate('a', lambda metadata: metadata.update({
            'x.txt': {'uploader': 'alice'},
        }))
        break_metadata('b')

        result = move_files('a', 'b', ['x.txt'])

        assert result.succeeded == ['x.txt']
        assert result.failed[0].item == 'b'
        assert result.failed[0].kind == ErrorKind.METADATA_WRITE_FAILURE
        assert not (file_store / 'a' / 'x.txt').exists()
        assert (file_store / 'b' / 'x.txt').read_bytes() == b'moved'


class TestRenameFile:
    """Tests for rename_file function."""

    def test_rename_migrates_metadata(self, make_file, file_store, metadata_store):
        """Test rename moves the file and its metadata key."""
        make_file('old.txt')
        metadata_store.mutate('root', lambda metadata: metadata.update({
            'old.txt': {'uploader': 'alice'},
        }))

        result = rename_file('root', 'old.txt', 'new.txt')

        assert result.payload == {'newName': 'new.txt'}
        assert (file_store / 'new.txt').exists()
        assert metadata_store.get('root') == {'new.txt': {'uploader': 'alice'}}

    def test_rename_to_taken_name(self, make_file):
        """Test a taken name is replaced by a numbered variant."""
        make_file('a.txt')
        make_file('b.txt')

        result = rename_file('root', 'a.txt', 'b.txt')

        assert result.payload == {'newName': 'b (1).txt'}

    def test_rename_to_same_name(self, make_file):
        """Test renaming to the current name changes nothing."""
        make_file('a.txt')

        result = rename_file('root', 'a.txt', 'a.txt')

        assert result.payload == {'newName': 'a.txt'}

    def test_rename_missing_file(self):
        """Test renaming a missing file is NotFound."""
        result = rename_file('root', 'absent.txt', 'b.txt')

        assert result.kind == ErrorKind.NOT_FOUND

    def test_rename_metadata_unwritable(self, make_file, file_store, break_metadata):
        """Test the file keeps its new name when metadata fails."""
        make_file('old.txt', b'content')
        break_metadata('root')

        result = rename_file('root', 'old.txt', 'new.txt')

        assert not result.ok
        assert result.kind == ErrorKind.METADATA_WRITE_FAILURE
        assert not (file_store / 'old.txt').exists()
        assert (file_store / 'new.txt').read_bytes() == b'content'


class TestCreateFolder:
    """Tests for create_folder function."""

    def test_create_nested_folder(self, file_store):
        """Test a sub-folder is created below its parent."""
        (file_store / 'photos').mkdir()

        result = create_folder('photos', '2024')

        assert result.payload == {'folder': 'photos/2024'}
        assert (file_store / 'photos' / '2024').is_dir()

    def test_create_existing_folder(self, file_store):
        """Test an existing folder is a Collision."""
        (file_store / 'photos').mkdir()

        result = create_folder('root', 'photos')

        assert result.kind == ErrorKind.COLLISION

    def test_create_folder_invalid_name(self):
        """Test dots are not allowed in folder names."""
        result = create_folder('root', 'a.b')

        assert result.kind == ErrorKind.INVALID_NAME


class TestGetDownloadInfo:
    """Tests for get_download_info function."""

    def test_download_info(self, make_file):
        """Test existing file resolves with its MIME type."""
        path = make_file('docs/report.pdf')

        result = get_download_info('docs', 'report.pdf')

        assert result.payload == {'path': path, 'mimeType': 'application/pdf'}

    def test_download_missing_file(self):
        """Test a missing file is NotFound."""
        result = get_download_info('root', 'absent.pdf')

        assert result.kind == ErrorKind.NOT_FOUND

"""Tests for tagged operation results."""

from server.apps.files.exceptions import CollisionError, ErrorKind, NotFoundError
from server.apps.files.logic.results import BatchResult, Err, Ok


def test_ok_and_err():
    """Test single-item results expose ok and error kind."""
    assert Ok({'name': 'a.txt'}).ok is True

    err = Err.from_error(CollisionError('File already exists'))

    assert err.ok is False
    assert err.kind == ErrorKind.COLLISION
    assert err.message == 'File already exists'


class TestBatchResult:
    """Tests for BatchResult."""

    def test_empty_batch_is_ok(self):
        """Test a batch without failures succeeds."""
        result = BatchResult()

        assert result.ok
        assert not result.partial
        assert result.message == ''

    def test_partial_batch(self):
        """Test mixed outcomes aggregate messages."""
        result = BatchResult()
        result.add_success('a.txt')
        result.add_failure('b.txt', NotFoundError('b.txt does not exist.'))
        result.add_failure('c.txt', NotFoundError('c.txt does not exist.'))

        assert result.partial
        assert result.message == 'b.txt does not exist.; c.txt does not exist.'
        assert result.to_dict() == {
            'success': False,
            'succeeded': ['a.txt'],
            'failed': [
                {
                    'item': 'b.txt',
                    'kind': 'NotFound',
                    'message': 'b.txt does not exist.',
                },
                {
                    'item': 'c.txt',
                    'kind': 'NotFound',
                    'message': 'c.txt does not exist.',
                },
            ],
            'error': 'b.txt does not exist.; c.txt does not exist.',
        }

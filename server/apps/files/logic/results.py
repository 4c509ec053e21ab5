"""Tagged results returned by file store operations.

Single-item operations return :class:`Ok` or :class:`Err`. Batch
operations return a :class:`BatchResult` that keeps every item that
succeeded next to every item that failed; a batch never stops at the
first failing item.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, final

from server.apps.files.exceptions import ErrorKind, FileStoreError

_PayloadT = TypeVar('_PayloadT')


@final
@dataclass(frozen=True)
class Ok(Generic[_PayloadT]):
    """Successful outcome carrying the operation payload."""

    payload: _PayloadT

    @property
    def ok(self) -> bool:
        """Always True."""
        return True


@final
@dataclass(frozen=True, slots=True)
class Err:
    """Failed outcome."""

    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        """Always False."""
        return False

    @classmethod
    def from_error(cls, error: FileStoreError) -> 'Err':
        """Convert a raised file store error."""
        return cls(kind=error.kind, message=error.message)


Result = Ok[_PayloadT] | Err


@final
@dataclass(frozen=True, slots=True)
class FailedItem:
    """One item of a batch that could not be processed."""

    item: str
    kind: ErrorKind
    message: str


@final
@dataclass(slots=True)
class BatchResult:
    """Aggregate outcome of a batch operation."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when no item failed."""
        return not self.failed

    @property
    def partial(self) -> bool:
        """True when some items succeeded and some failed."""
        return bool(self.succeeded) and bool(self.failed)

    @property
    def message(self) -> str:
        """Aggregate error message, empty when everything succeeded."""
        return '; '.join(failure.message for failure in self.failed)

    def add_success(self, item: str) -> None:
        """Record a processed item."""
        self.succeeded.append(item)

    def add_failure(self, item: str, error: FileStoreError) -> None:
        """Record an item that failed with a file store error."""
        self.failed.append(FailedItem(item, error.kind, error.message))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for callers rendering the outcome."""
        return {
            'success': self.ok,
            'succeeded': list(self.succeeded),
            'failed': [
                {
                    'item': failure.item,
                    'kind': str(failure.kind),
                    'message': failure.message,
                }
                for failure in self.failed
            ],
            'error': self.message,
        }

"""Records of the file store.

There is no database: these are plain value objects that are built from
and serialized into the JSON documents kept on disk.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Final, Self, final

from server.apps.files.infrastructure.metadata import UNKNOWN

_DEFAULT_TAG_COLOR: Final = ''


@final
@dataclass(frozen=True, slots=True)
class Tag:
    """Named, colored label attached to files."""

    name: str
    color: str = _DEFAULT_TAG_COLOR

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a tag from its JSON form."""
        return cls(
            name=str(data.get('name', '')),
            color=str(data.get('color', _DEFAULT_TAG_COLOR)),
        )

    def to_dict(self) -> dict[str, str]:
        """Serialize to the JSON form stored in documents."""
        return {'name': self.name, 'color': self.color}


@final
@dataclass(frozen=True, slots=True)
class FileEntry:
    """One file of a folder listing.

    ``modified`` and ``size`` always come from the filesystem; the other
    attributes come from the folder's metadata document.
    """

    name: str
    size: str
    size_bytes: int
    modified: str
    uploaded: str = UNKNOWN
    uploader: str = UNKNOWN
    tags: tuple[Tag, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Serialize for callers rendering listings."""
        return {
            'name': self.name,
            'size': self.size,
            'sizeBytes': self.size_bytes,
            'modified': self.modified,
            'uploaded': self.uploaded,
            'uploader': self.uploader,
            'tags': [tag.to_dict() for tag in self.tags],
        }


@final
class TrashItemType(enum.StrEnum):
    """Kind of object a trash record stands for."""

    FILE = 'file'
    FOLDER = 'folder'


@final
@dataclass(frozen=True, slots=True)
class TrashRecord:
    """Entry of the trash ledger.

    For files, the object itself lives in the trash directory under
    ``trash_name``. Folder records have no physical counterpart.
    """

    original_folder: str
    original_name: str
    trash_name: str
    trashed_at: int
    type: TrashItemType = TrashItemType.FILE
    uploaded: str = UNKNOWN
    uploader: str = UNKNOWN
    deleted_by: str = UNKNOWN

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a record from the ledger, filling missing provenance."""
        return cls(
            type=TrashItemType(data.get('type') or TrashItemType.FILE),
            original_folder=str(data.get('originalFolder', '')),
            original_name=str(data.get('originalName', '')),
            trash_name=str(data.get('trashName', '')),
            trashed_at=int(data.get('trashedAt') or 0),
            uploaded=str(data.get('uploaded') or UNKNOWN),
            uploader=str(data.get('uploader') or UNKNOWN),
            deleted_by=str(data.get('deletedBy') or UNKNOWN),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger form."""
        return {
            'type': str(self.type),
            'originalFolder': self.original_folder,
            'originalName': self.original_name,
            'trashName': self.trash_name,
            'trashedAt': self.trashed_at,
            'uploaded': self.uploaded,
            'uploader': self.uploader,
            'deletedBy': self.deleted_by,
        }


@final
@dataclass(frozen=True, slots=True)
class ShareLink:
    """Time-limited, optionally password protected share of one file."""

    token: str
    folder: str
    file: str
    expires: int
    password_hash: str = field(default='', repr=False)

    @classmethod
    def from_dict(cls, token: str, data: dict[str, Any]) -> Self:
        """Build a link from its ledger entry."""
        return cls(
            token=token,
            folder=str(data.get('folder', '')),
            file=str(data.get('file', '')),
            expires=int(data.get('expires') or 0),
            password_hash=str(data.get('password') or ''),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger entry (the token is the ledger key)."""
        return {
            'folder': self.folder,
            'file': self.file,
            'expires': self.expires,
            'password': self.password_hash,
        }

    @property
    def is_protected(self) -> bool:
        """Whether a password is required to use the link."""
        return bool(self.password_hash)

    def is_expired(self, now: int) -> bool:
        """Check the link against a Unix timestamp.

        Args:
            now: Current time in seconds since the epoch.

        Returns:
            True once the expiry moment has passed.
        """
        return self.expires < now

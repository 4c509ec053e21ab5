"""Resolution of logical folder and file names inside the storage root.

Logical folders are what callers see: ``root``, ``photos`` or
``photos/2024``. Physical paths are absolute paths below ``FILES_ROOT``.
Every resolution canonicalizes the result and refuses anything that
does not stay inside the canonical root.
"""

import os
import re
from functools import cached_property
from pathlib import Path
from typing import Final, final

from django.conf import settings

from server.apps.files.exceptions import (
    InvalidNameError,
    NotFoundError,
    PathEscapeError,
)

# Reserved logical name of the storage root itself
ROOT_FOLDER: Final = 'root'

# One folder segment: letters, digits, underscore, hyphen and space
_FOLDER_SEGMENT_RE: Final = re.compile(r'^[\w\- ]{1,255}$')

# File basename: anything but control characters and the two separators
_FILE_NAME_RE: Final = re.compile(r'^[^\x00-\x1f/\\]{1,255}$')

_SEPARATORS_RE: Final = re.compile(r'[/\\]')

_STRIP_CHARS: Final = '/\\ '


def is_root_folder(folder: str) -> bool:
    """Check if a logical folder names the storage root.

    Args:
        folder: Logical folder as supplied by the caller.

    Returns:
        True for ``root`` in any case and for an empty folder.
    """
    stripped = folder.strip(_STRIP_CHARS)
    return not stripped or stripped.lower() == ROOT_FOLDER


def normalize_folder(folder: str) -> str:
    """Normalize a logical folder to its canonical spelling.

    Args:
        folder: Logical folder (e.g., ``' /photos/2024/ '``).

    Returns:
        ``root`` or the folder without surrounding separators and spaces
        (e.g., ``photos/2024``).
    """
    if is_root_folder(folder):
        return ROOT_FOLDER
    return folder.strip(_STRIP_CHARS)


def split_folder(folder: str) -> list[str]:
    """Split a logical folder into validated segments.

    Args:
        folder: Logical folder other than ``root``.

    Returns:
        List of folder segments.

    Raises:
        PathEscapeError: If a segment is ``.`` or ``..``.
        InvalidNameError: If a segment fails the folder name pattern.
    """
    segments = _SEPARATORS_RE.split(normalize_folder(folder))
    for segment in segments:
        if segment in {'.', '..'}:
            raise PathEscapeError(f'Invalid folder path: {folder}')
        if not _FOLDER_SEGMENT_RE.match(segment):
            raise InvalidNameError(f'Invalid folder name: {folder}')
    return segments


def clean_file_name(file_name: str) -> str:
    """Reduce a file name argument to a validated basename.

    Any directory component is dropped before validation, so a name like
    ``../../etc/passwd`` is treated as ``passwd``.

    Args:
        file_name: File name supplied by the caller.

    Returns:
        Validated basename.

    Raises:
        InvalidNameError: If the basename fails the file name pattern.
    """
    basename = _SEPARATORS_RE.split(file_name.strip())[-1]
    if basename in {'.', '..'} or not _FILE_NAME_RE.match(basename):
        raise InvalidNameError(f'{basename} has an invalid name.')
    return basename


def is_valid_file_name(file_name: str) -> bool:
    """Check a basename against the file name pattern.

    Args:
        file_name: Basename to check.

    Returns:
        True if the name is usable as a stored file name.
    """
    return file_name not in {'.', '..'} and bool(_FILE_NAME_RE.match(file_name))


@final
class PathSandbox:
    """Maps logical folders and file names to physical paths under a root.

    The only state is the canonical root, computed once; instances are
    safe to share between threads.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize sandbox.

        Args:
            root: Physical storage root.
        """
        self._root = Path(root)

    @cached_property
    def root(self) -> Path:
        """Canonical storage root."""
        return Path(os.path.realpath(self._root))

    def resolve(self, folder: str, *, must_exist: bool = True) -> Path:
        """Resolve a logical folder to a physical directory.

        Args:
            folder: Logical folder (``root`` or ``a/b``).
            must_exist: Whether the directory has to exist already.

        Returns:
            Canonical physical directory inside the root.

        Raises:
            NotFoundError: If must_exist is set and the folder is missing.
        """
        if is_root_folder(folder):
            target = self.root
        else:
            segments = split_folder(folder)
            target = self._contain(
                self.root.joinpath(*segments),
                folder,
                allow_root=False,
            )
        if must_exist and not target.is_dir():
            raise NotFoundError(f'Folder not found: {normalize_folder(folder)}')
        return target

    def resolve_file(
        self,
        folder: str,
        file_name: str,
        *,
        must_exist: bool = False,
    ) -> Path:
        """Resolve a file inside a logical folder.

        Args:
            folder: Logical folder containing the file.
            file_name: File name; only its basename is used.
            must_exist: Whether the file has to exist already.

        Returns:
            Physical file path inside the root.

        Raises:
            NotFoundError: If must_exist is set and the file is missing.
        """
        basename = clean_file_name(file_name)
        directory = self.resolve(folder, must_exist=must_exist)
        file_path = directory / basename
        if file_path.is_symlink():
            # Links pointing out of the tree are treated as escapes
            self._contain(file_path, basename, allow_root=False)
        if must_exist and not file_path.is_file():
            raise NotFoundError(f'{basename} does not exist.')
        return file_path

    def to_logical(self, physical_dir: Path | str) -> str:
        """Convert a physical directory back to its logical folder.

        Args:
            physical_dir: Directory inside the root.

        Returns:
            Logical folder, ``root`` for the root itself.

        Raises:
            PathEscapeError: If the directory is outside the root.
        """
        canonical = self._contain(Path(physical_dir), str(physical_dir))
        relative = canonical.relative_to(self.root).as_posix()
        if relative in {'', '.'}:
            return ROOT_FOLDER
        return relative

    def _contain(
        self,
        candidate: Path,
        label: str,
        *,
        allow_root: bool = True,
    ) -> Path:
        canonical = Path(os.path.realpath(candidate))
        root = str(self.root)
        try:
            common = os.path.commonpath([root, str(canonical)])
        except ValueError as error:
            raise PathEscapeError(f'Invalid folder path: {label}') from error
        if common != root or (not allow_root and canonical == self.root):
            raise PathEscapeError(f'Invalid folder path: {label}')
        return canonical


def get_sandbox() -> PathSandbox:
    """Build the sandbox for the configured storage root.

    Returns:
        PathSandbox rooted at ``settings.FILES_ROOT``.
    """
    return PathSandbox(settings.FILES_ROOT)

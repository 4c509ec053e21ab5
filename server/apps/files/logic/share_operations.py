"""Business logic for share links.

Share links live in ``share_links.json``, keyed by a random token.
Expired links are only dropped when a new link is created; callers
compare ``expires`` against the clock when a link is used.
"""

import logging
import secrets
from typing import Any, Final

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.utils import timezone

from server.apps.files.exceptions import FileStoreError, NotFoundError
from server.apps.files.infrastructure.metadata import get_metadata_documents
from server.apps.files.infrastructure.sandbox import (
    clean_file_name,
    is_root_folder,
    normalize_folder,
    split_folder,
)
from server.apps.files.logic.results import Err, Ok, Result
from server.apps.files.models import ShareLink

SHARE_LINKS_DOCUMENT: Final = 'share_links.json'

# Token length in bytes (generates 32 hex chars)
_TOKEN_BYTES: Final = 16

ShareLedger = dict[str, dict[str, Any]]

logger = logging.getLogger(__name__)


def _now() -> int:
    return int(timezone.now().timestamp())


def create_share_link(
    folder: str,
    file_name: str,
    ttl_seconds: int | None = None,
    password: str = '',
) -> Result[dict[str, Any]]:
    """Create a time-limited share link for a file.

    Expired links are purged from the ledger before the new one is
    added.

    Args:
        folder: Logical folder of the shared file.
        file_name: Shared file.
        ttl_seconds: Lifetime; defaults to ``FILES_SHARE_DEFAULT_TTL``.
        password: Optional password protecting the link.

    Returns:
        Ok with ``token`` and ``expires`` (Unix timestamp).
    """
    if ttl_seconds is None:
        ttl_seconds = settings.FILES_SHARE_DEFAULT_TTL
    try:
        if not is_root_folder(folder):
            split_folder(folder)
        basename = clean_file_name(file_name)
    except FileStoreError as error:
        return Err.from_error(error)

    now = _now()
    link = ShareLink(
        token=secrets.token_hex(_TOKEN_BYTES),
        folder=normalize_folder(folder),
        file=basename,
        expires=now + ttl_seconds,
        password_hash=make_password(password) if password else '',
    )

    def add_link(ledger: ShareLedger) -> None:
        expired = [
            token for token, entry in ledger.items()
            if ShareLink.from_dict(token, entry).is_expired(now)
        ]
        for token in expired:
            del ledger[token]
        if expired:
            logger.info('Purged %d expired share links', len(expired))
        ledger[link.token] = link.to_dict()

    try:
        get_metadata_documents().mutate(SHARE_LINKS_DOCUMENT, dict, add_link)
    except FileStoreError as error:
        return Err.from_error(error)

    logger.info('Share link created for %s/%s', link.folder, link.file)
    return Ok({'token': link.token, 'expires': link.expires})


def get_share_link(token: str) -> Result[ShareLink]:
    """Look up a share link.

    Expiry is not checked here; see :meth:`ShareLink.is_expired`.

    Args:
        token: Share token.

    Returns:
        Ok with the ShareLink, Err(NotFound) for an unknown token.
    """
    ledger = get_metadata_documents().read(SHARE_LINKS_DOCUMENT, dict)
    entry = ledger.get(token)
    if not isinstance(entry, dict):
        return Err.from_error(NotFoundError('Share link not found.'))
    return Ok(ShareLink.from_dict(token, entry))


def list_share_links() -> list[ShareLink]:
    """List all share links, including expired ones.

    Returns:
        ShareLink instances in ledger order.
    """
    ledger = get_metadata_documents().read(SHARE_LINKS_DOCUMENT, dict)
    return [
        ShareLink.from_dict(token, entry)
        for token, entry in ledger.items()
        if isinstance(entry, dict)
    ]


def delete_share_link(token: str) -> bool:
    """Delete a share link.

    Args:
        token: Share token.

    Returns:
        True if the link existed.
    """
    def remove(ledger: ShareLedger) -> bool:
        return ledger.pop(token, None) is not None

    existed = get_metadata_documents().mutate(SHARE_LINKS_DOCUMENT, dict, remove)
    if existed:
        logger.info('Share link deleted: %s', token)
    return existed


def check_share_password(link: ShareLink, password: str) -> bool:
    """Verify a password supplied for a share link.

    Args:
        link: The share link.
        password: Password supplied by the visitor.

    Returns:
        True if the link is unprotected or the password matches.
    """
    if not link.is_protected:
        return True
    return check_password(password, link.password_hash)

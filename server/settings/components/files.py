"""File store settings.

The upload root and its sibling directories (trash, metadata) are
resolved by the deployment and passed in through the environment.
"""

from pathlib import Path

from server.settings.components import BASE_DIR, config

_DATA_DIR = BASE_DIR.joinpath('data')

# Root of the user-visible file tree
FILES_ROOT = Path(config('FILES_ROOT', default=str(_DATA_DIR / 'uploads')))

# Trashed files and the trash ledger (trash.json)
FILES_TRASH_DIR = Path(
    config('FILES_TRASH_DIR', default=str(_DATA_DIR / 'trash')),
)

# Per-folder metadata documents, share_links.json and createdTags.json
FILES_METADATA_DIR = Path(
    config('FILES_METADATA_DIR', default=str(_DATA_DIR / 'metadata')),
)

# Format of the uploaded/modified stamps kept in metadata documents
FILES_DATE_TIME_FORMAT = config(
    'FILES_DATE_TIME_FORMAT',
    default='%m/%d/%y  %I:%M%p',
)

# Share links
FILES_SHARE_DEFAULT_TTL = config(
    'FILES_SHARE_DEFAULT_TTL',
    cast=int,
    default=3600,
)

# Trash retention used by the cleanup_trash command
FILES_TRASH_RETENTION_DAYS = config(
    'FILES_TRASH_RETENTION_DAYS',
    cast=int,
    default=30,
)

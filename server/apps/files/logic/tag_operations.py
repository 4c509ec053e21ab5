"""Business logic for file tags.

Tags live in two places: the ``tags`` list of a file's metadata entry,
and the global ``createdTags.json`` list offered for reuse. Global tag
names are compared case-insensitively.
"""

import logging
from collections.abc import Iterable
from typing import Any, Final

from server.apps.files.exceptions import FileStoreError
from server.apps.files.infrastructure.metadata import (
    FolderMetadata,
    get_metadata_documents,
    get_metadata_store,
)
from server.apps.files.infrastructure.sandbox import (
    clean_file_name,
    is_root_folder,
    split_folder,
)
from server.apps.files.logic.results import Err, Ok, Result
from server.apps.files.models import Tag

GLOBAL_TAGS_DOCUMENT: Final = 'createdTags.json'

logger = logging.getLogger(__name__)


def get_global_tags() -> list[dict[str, Any]]:
    """Read the global tag list.

    Returns:
        List of ``{name, color}`` dicts; empty if none were saved yet.
    """
    return get_metadata_documents().read(GLOBAL_TAGS_DOCUMENT, list)


def save_file_tags(
    folder: str,
    file_name: str,
    tags: Iterable[Tag],
    *,
    delete_global: bool = False,
    tag_to_delete: str | None = None,
) -> Result[list[dict[str, Any]]]:
    """Set the tags of a file and update the global tag list.

    The file's metadata entry is created if missing. Afterwards either
    ``tag_to_delete`` is removed from the global list (when
    ``delete_global`` is set) or the given tags are merged into it.

    Args:
        folder: Logical folder of the file.
        file_name: Tagged file.
        tags: Complete new tag list of the file.
        delete_global: Remove ``tag_to_delete`` from the global list.
        tag_to_delete: Name of the global tag to remove.

    Returns:
        Ok with the updated global tag list.
    """
    tag_dicts = [tag.to_dict() for tag in tags]
    try:
        if not is_root_folder(folder):
            split_folder(folder)
        basename = clean_file_name(file_name)

        def set_tags(metadata: FolderMetadata) -> None:
            metadata.setdefault(basename, {})['tags'] = tag_dicts

        get_metadata_store().mutate(folder, set_tags)

        if delete_global and tag_to_delete:
            global_tags = get_metadata_documents().mutate(
                GLOBAL_TAGS_DOCUMENT,
                list,
                lambda current: _remove_tag(current, tag_to_delete),
            )
        else:
            global_tags = get_metadata_documents().mutate(
                GLOBAL_TAGS_DOCUMENT,
                list,
                lambda current: _merge_tags(current, tag_dicts),
            )
    except FileStoreError as error:
        return Err.from_error(error)

    logger.info('Tags saved for %s in %s', basename, folder)
    return Ok(global_tags)


def _merge_tags(
    global_tags: list[dict[str, Any]],
    new_tags: list[dict[str, str]],
) -> list[dict[str, Any]]:
    for tag in new_tags:
        lowered = tag['name'].lower()
        for existing in global_tags:
            if str(existing.get('name', '')).lower() == lowered:
                existing['color'] = tag['color']
                break
        else:
            global_tags.append(dict(tag))
    return list(global_tags)


def _remove_tag(
    global_tags: list[dict[str, Any]],
    tag_name: str,
) -> list[dict[str, Any]]:
    lowered = tag_name.lower()
    global_tags[:] = [
        tag for tag in global_tags
        if str(tag.get('name', '')).lower() != lowered
    ]
    return list(global_tags)

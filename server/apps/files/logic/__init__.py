"""Business logic layer for files app.

This package contains all business logic of the file store:
- File listing, creation, saving, copy, move and rename
- Trash (soft delete, restore, purge)
- Archive bundling and extraction
- Share links and tags

Operations take an explicit acting identity and return tagged results
(see ``results``) instead of raising for per-item failures.
"""

"""Infrastructure layer for files app.

This package contains integrations with the local filesystem:
- Path sandboxing of logical folders under the storage root
- Locked, atomically rewritten JSON documents
- Per-folder metadata documents
- Physical file operations

Keep infrastructure concerns separate from business logic.
"""

"""Management command to clean up old items from trash."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from server.apps.files.logic.trash_operations import list_trash, purge_trash

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Permanently delete items that have been in trash for too long."""

    help = 'Clean up old items from trash (FILES_TRASH_RETENTION_DAYS)'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max items to process (default: {_DEFAULT_BATCH_SIZE})',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        retention_days = settings.FILES_TRASH_RETENTION_DAYS

        cutoff = timezone.now() - timedelta(days=retention_days)
        cutoff_timestamp = int(cutoff.timestamp())

        self.stdout.write(
            f'Looking for items deleted before {cutoff} '
            f'(older than {retention_days} days)',
        )

        old_records = sorted(
            (
                record for record in list_trash()
                if record.trashed_at <= cutoff_timestamp
            ),
            key=lambda record: record.trashed_at,
        )[:batch_size]

        if dry_run:
            for record in old_records:
                self.stdout.write(
                    f'Would delete: {record.trash_name} '
                    f'(deleted by: {record.deleted_by}, '
                    f'deleted: {record.trashed_at})',
                )
            self.stdout.write(
                self.style.SUCCESS(
                    f'Would purge {len(old_records)} files from trash',
                ),
            )
            return

        result = purge_trash(record.trash_name for record in old_records)
        for failure in result.failed:
            self.stderr.write(f'Failed to delete {failure.item}: {failure.message}')
            logger.error(
                'Failed to purge item from trash: %s (%s)',
                failure.item,
                failure.kind,
            )

        self.stdout.write(
            self.style.SUCCESS(
                f'Purged {len(result.succeeded)} files from trash, '
                f'{len(result.failed)} failed',
            ),
        )

"""Management command to reconcile metadata with object storage."""

import logging
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand

from server.apps.materials.logic.reconcile_operations import (
    delete_orphan_blob,
    find_missing_blobs,
    find_orphan_blobs,
    find_tier_mismatches,
)
from server.apps.materials.spaces import SPACES, FileSpace

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Report records without objects and objects without records."""

    help = 'Find missing and orphaned objects in file storage'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--space',
            choices=sorted(SPACES),
            help='Only check one file space (default: all)',
        )
        parser.add_argument(
            '--delete-orphans',
            action='store_true',
            help='Delete objects that no record references',
        )
        parser.add_argument(
            '--min-age',
            type=int,
            default=settings.MATERIALS_ORPHAN_MIN_AGE_HOURS,
            help=(
                'Only treat objects older than this many hours as orphaned '
                f'(default: {settings.MATERIALS_ORPHAN_MIN_AGE_HOURS})'
            ),
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the reconciliation.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        if options['space']:
            spaces = [SPACES[options['space']]]
        else:
            spaces = list(SPACES.values())

        min_age = timedelta(hours=options['min_age'])
        self.stdout.write(
            f'Looking for orphaned objects older than {options["min_age"]} '
            'hours',
        )

        for space in spaces:
            self._reconcile(
                space,
                min_age=min_age,
                delete_orphans=options['delete_orphans'],
                dry_run=options['dry_run'],
            )

    def _reconcile(
        self,
        space: FileSpace,
        *,
        min_age: timedelta,
        delete_orphans: bool,
        dry_run: bool,
    ) -> None:
        self.stdout.write(f'Checking {space.name} files')

        missing = find_missing_blobs(space)
        for record in missing:
            self.stdout.write(
                f'Missing object: {record.storage_key} '
                f'(record {record.pk}, {record.scope_id})',
            )

        for record in find_tier_mismatches(space):
            self.stdout.write(
                f'Tier mismatch: {record.storage_key} '
                f'(record {record.pk}, tier {record.tier})',
            )

        orphans = find_orphan_blobs(space, min_age=min_age)
        deleted = 0
        failed = 0
        for orphan in orphans:
            if not delete_orphans or dry_run:
                prefix = 'Would delete' if delete_orphans else 'Orphaned object'
                self.stdout.write(f'{prefix}: {orphan.storage_key}')
                continue

            try:
                delete_orphan_blob(space, orphan)
                deleted += 1
            except Exception as exc:
                self.stderr.write(
                    f'Failed to delete {orphan.storage_key}: {exc}',
                )
                logger.exception(
                    'Failed to delete orphaned object: %s',
                    orphan.storage_key,
                )
                failed += 1

        summary = (
            f'{space.name}: {len(missing)} missing, '
            f'{len(orphans)} orphaned'
        )
        if delete_orphans and not dry_run:
            summary = f'{summary}, {deleted} deleted, {failed} failed'
        self.stdout.write(self.style.SUCCESS(summary))

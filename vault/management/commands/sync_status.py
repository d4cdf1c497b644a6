"""
Management command to reconcile stored statuses with the files on disk.
"""
import json

from django.core.management.base import BaseCommand

from vault import catalog
from vault.service.checker import RecordChecker
from vault.service.config import get_data_dir, get_hls_dir
from vault.service.reconcile import sync_all_statuses


class Command(BaseCommand):
    help = 'Recompute every status column from the files on disk'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would change without writing it'
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Rewrite every status field, even unchanged ones'
        )
        parser.add_argument('--verbose', action='store_true', help='List each change')
        parser.add_argument('--json', action='store_true', help='JSON output')

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        json_output = options['json']

        logger = self.stdout.write if options['verbose'] and not json_output else None
        checker = RecordChecker(get_data_dir(), get_hls_dir())
        stats = sync_all_statuses(
            catalog.read_all_records(),
            catalog.update_record,
            checker,
            dry_run=dry_run,
            force=options['force'],
            logger=logger,
        )

        if json_output:
            self.stdout.write(json.dumps(stats, indent=2, default=str))
            return

        prefix = '[DRY RUN] ' if dry_run else ''
        self.stdout.write(
            self.style.SUCCESS(
                f"{prefix}{stats['synced']} synced, {stats['unchanged']} unchanged "
                f"of {stats['total']} records"
            )
        )
        if dry_run:
            for record_id, updates in stats['changes'].items():
                changes = ', '.join(f'{k}={v}' for k, v in updates.items())
                self.stdout.write(f"  {record_id}: {changes}")
        for error in stats['errors']:
            self.stdout.write(self.style.ERROR(f"  {error['id']}: {error['error']}"))

"""
Management command to add a captured media URL to the catalog.
"""
import json

from django.core.management.base import BaseCommand, CommandError

from vault.models import CaptureItem
from vault.operations import capture_media


class Command(BaseCommand):
    help = 'Add a captured media URL so maintenance downloads it'

    def add_arguments(self, parser):
        parser.add_argument('page_url', type=str, help='Page the media was found on')
        parser.add_argument('file_url', type=str, help='Direct media URL')
        parser.add_argument(
            '--type',
            type=str,
            choices=[CaptureItem.MEDIA_TYPE_VIDEO, CaptureItem.MEDIA_TYPE_IMAGE],
            default=CaptureItem.MEDIA_TYPE_VIDEO,
            help='Media type (default: video)',
        )
        parser.add_argument('--title', type=str, default='', help='Optional title')
        parser.add_argument('--json', action='store_true', help='JSON output')

    def handle(self, *args, **options):
        try:
            item = capture_media(
                options['page_url'],
                options['file_url'],
                media_type=options['type'],
                title=options['title'],
                logger=None if options['json'] else self.stdout.write,
            )
        except ValueError as e:
            raise CommandError(str(e))

        if options['json']:
            self.stdout.write(json.dumps({'id': item.id, 'media_type': item.media_type}))
        else:
            self.stdout.write(self.style.SUCCESS(f'✓ Captured {item.id}'))

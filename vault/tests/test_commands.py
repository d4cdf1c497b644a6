"""
Tests for the management commands
"""
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings
from io import StringIO
from unittest.mock import patch
from pathlib import Path
import json
import tempfile

from vault.models import CaptureItem
from vault.state import DatabaseStateStore


class CommandTestBase(TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.settings_override = override_settings(
            VAULT_DATA_DIR=str(self.data_dir),
            VAULT_HLS_DIR='',
            VAULT_WORKR_URL='',
            VAULT_BROWSER_FALLBACK=False,
        )
        self.settings_override.enable()

    def tearDown(self):
        self.settings_override.disable()
        self._tmp.cleanup()

    def call(self, *args, **kwargs):
        out = StringIO()
        call_command(*args, stdout=out, **kwargs)
        return out.getvalue()


class CaptureCommandTest(CommandTestBase):
    """Test the capture command"""

    def test_capture(self):
        """Test adding a video"""
        output = self.call('capture', 'https://lurl.cc/abc', 'https://cdn.lurl.cc/abc.mp4')
        item = CaptureItem.objects.get()
        self.assertIn(f'✓ Captured {item.id}', output)

    def test_capture_image_json(self):
        """Test JSON output for an image"""
        output = self.call('capture', 'https://lurl.cc/pic', 'https://cdn.lurl.cc/pic.jpg',
                           '--type', 'image', '--json')
        data = json.loads(output)
        self.assertEqual(data['media_type'], 'image')
        self.assertEqual(CaptureItem.objects.get(id=data['id']).hls_status, 'skipped')


class MaintenanceCommandTest(CommandTestBase):
    """Test the maintenance command"""

    def setUp(self):
        super().setUp()
        patcher = patch('vault.management.commands.maintenance.reload_maintenance_config')
        self.mock_reload = patcher.start()
        self.addCleanup(patcher.stop)

    def test_status(self):
        """Test the status listing"""
        CaptureItem.objects.create(page_url='https://lurl.cc/abc', file_url='https://cdn.lurl.cc/abc.mp4')

        output = self.call('maintenance', 'status')

        self.assertIn('Scheduler: idle', output)
        self.assertIn('[1] download: 1 pending', output)
        self.assertIn('[5] cleanup: 0 pending', output)

    def test_status_json(self):
        """Test the status as JSON"""
        data = json.loads(self.call('maintenance', 'status', '--json'))
        self.assertFalse(data['is_running'])
        self.assertEqual(set(data['strategies']), {'download', 'thumbnail', 'preview', 'hls', 'cleanup'})

    def test_run_one_and_history(self):
        """Test running one strategy and seeing it in the history"""
        output = self.call('maintenance', 'run', 'hls')
        self.assertIn('hls: 0 processed', output)

        history = json.loads(self.call('maintenance', 'history', '--json'))
        self.assertEqual(history[0]['action'], 'hls')

    def test_run_unknown_strategy(self):
        """Test that an unknown strategy is a command error"""
        with self.assertRaisesMessage(CommandError, 'Strategy not found: bogus'):
            self.call('maintenance', 'run', 'bogus')

    def test_empty_history(self):
        """Test the history listing with no runs"""
        self.assertIn('No runs recorded', self.call('maintenance', 'history'))

    def test_config(self):
        """Test that config changes are persisted"""
        self.call('maintenance', 'config', '--interval', '120', '--max-concurrent', '2',
                  '--disable', 'hls', '--priority', 'preview=7')

        config = DatabaseStateStore().load('maintenance-config')
        self.assertEqual(config['run_interval'], 120)
        self.assertEqual(config['max_concurrent'], 2)
        self.assertFalse(config['strategies']['hls']['enabled'])
        self.assertEqual(config['strategies']['preview']['priority'], 7)
        self.mock_reload.assert_called_once_with()

        output = self.call('maintenance', 'status')
        self.assertIn('hls (disabled)', output)
        self.assertIn('[7] preview', output)

    def test_config_validation(self):
        """Test rejected config values"""
        with self.assertRaises(CommandError):
            self.call('maintenance', 'config', '--interval', '0')
        with self.assertRaisesMessage(CommandError, 'Strategy not found: bogus'):
            self.call('maintenance', 'config', '--enable', 'bogus')
        with self.assertRaisesMessage(CommandError, 'Invalid priority'):
            self.call('maintenance', 'config', '--priority', 'hls=high')
        self.mock_reload.assert_not_called()

    def test_autorun(self):
        """Test toggling auto-run"""
        self.call('maintenance', 'autorun', 'on')
        self.assertTrue(DatabaseStateStore().load('maintenance-config')['auto_run'])

        self.call('maintenance', 'autorun', 'off')
        self.assertFalse(DatabaseStateStore().load('maintenance-config')['auto_run'])
        self.assertEqual(self.mock_reload.call_count, 2)

        with self.assertRaises(CommandError):
            self.call('maintenance', 'autorun', 'maybe')


class SyncStatusCommandTest(CommandTestBase):
    """Test the sync_status command"""

    def test_dry_run(self):
        """Test that dry-run lists changes without writing them"""
        item = CaptureItem.objects.create(
            page_url='https://lurl.cc/pic',
            file_url='https://cdn.lurl.cc/pic.jpg',
            media_type='image',
        )

        output = self.call('sync_status', '--dry-run')

        self.assertIn('[DRY RUN] 1 synced', output)
        self.assertIn(f'{item.id}: thumbnail_status=skipped, preview_status=skipped, hls_status=skipped', output)
        item.refresh_from_db()
        self.assertEqual(item.preview_status, 'pending')

    def test_sync_json(self):
        """Test a real sync with JSON output"""
        CaptureItem.objects.create(
            page_url='https://lurl.cc/pic',
            file_url='https://cdn.lurl.cc/pic.jpg',
            media_type='image',
        )

        first = json.loads(self.call('sync_status', '--json'))
        second = json.loads(self.call('sync_status', '--json'))

        self.assertEqual(first['synced'], 1)
        self.assertEqual(second['synced'], 0)
        self.assertEqual(second['unchanged'], 1)

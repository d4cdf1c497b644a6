"""
Tests for service/reconcile.py
"""
from django.test import TestCase
from unittest.mock import MagicMock
from pathlib import Path
import tempfile

from vault.service.checker import RecordChecker
from vault.service.reconcile import sync_all_statuses
from vault.test_service.fakes import FakeCatalog, image, video, write_file, write_master


class ReconcileTest(TestCase):
    """Tests for sync_all_statuses"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.checker = RecordChecker(self.data_dir)

        write_file(self.data_dir, 'videos/long.mp4')
        write_file(self.data_dir, 'videos/short.mp4')
        write_master(self.checker.hls_dir, 'streamed')
        self.catalog = FakeCatalog([
            video('long', backup_path='videos/long.mp4', duration=45),
            video('short', backup_path='videos/short.mp4', duration=8),
            video('streamed', hls_ready=True, duration=60, original_status='exists'),
            video('gone', download_status='completed', backup_path='videos/gone.mp4'),
            image('pic', preview_status='pending', hls_status='pending'),
        ])

    def tearDown(self):
        self._tmp.cleanup()

    def sync(self, **kwargs):
        return sync_all_statuses(
            self.catalog.read_all_records(),
            self.catalog.update_record,
            self.checker,
            **kwargs,
        )

    def test_second_run_is_empty(self):
        """Test that reconciling twice changes nothing the second time"""
        first = self.sync()
        self.assertEqual(first['total'], 5)
        self.assertEqual(first['synced'], 5)

        second = self.sync()
        self.assertEqual(second['synced'], 0)
        self.assertEqual(second['unchanged'], 5)
        self.assertEqual(second['errors'], [])

    def test_images_and_short_videos_end_skipped(self):
        """Test that preview and HLS are skipped, never pending, for images and short videos"""
        self.sync()
        for record_id in ('short', 'pic'):
            record = self.catalog.get_record(record_id)
            self.assertEqual(record.preview_status, 'skipped')
            self.assertEqual(record.hls_status, 'skipped')

    def test_writes_only_changed_fields(self):
        """Test that updates are partial"""
        self.sync()
        updates = dict(self.catalog.updates)
        self.assertEqual(updates['gone'], {'download_status': 'pending'})
        self.assertEqual(updates['streamed']['original_status'], 'cleaned')

    def test_dry_run_writes_nothing(self):
        """Test that dry-run reports changes without writing"""
        stats = self.sync(dry_run=True)
        self.assertEqual(stats['synced'], 5)
        self.assertEqual(self.catalog.updates, [])
        self.assertEqual(stats['changes']['gone'], {'download_status': 'pending'})

    def test_force_rewrites_everything(self):
        """Test that force writes every record even when in sync"""
        self.sync()
        self.catalog.updates.clear()

        stats = self.sync(force=True)

        self.assertEqual(stats['synced'], 5)
        self.assertTrue(all(len(updates) == 5 for _, updates in self.catalog.updates))

    def test_errors_are_collected(self):
        """Test that one failing record does not stop the others"""
        update_record = MagicMock(side_effect=[RuntimeError('locked'), None, None, None, None])

        stats = sync_all_statuses(self.catalog.read_all_records(), update_record, self.checker)

        self.assertEqual(stats['synced'], 4)
        self.assertEqual(stats['errors'], [{'id': 'long', 'error': 'locked'}])

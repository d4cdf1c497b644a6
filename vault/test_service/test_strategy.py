"""
Tests for service/strategy.py
"""
from django.test import TestCase

from vault.service.strategy import MaintenanceStrategy, ProcessResult, StageContext


class MaintenanceStrategyTest(TestCase):
    """Tests for the strategy base class"""

    def test_defaults(self):
        """Test the base defaults"""
        strategy = MaintenanceStrategy('custom')
        self.assertEqual(strategy.priority, 5)
        self.assertEqual(strategy.batch_size, 10)
        self.assertEqual(strategy.interval, 0)
        self.assertTrue(strategy.enabled)
        self.assertEqual(strategy.retry_count, 3)
        self.assertIsNone(strategy.last_run)

    def test_abstract_methods(self):
        """Test that subclasses must implement selection and processing"""
        strategy = MaintenanceStrategy('custom')
        with self.assertRaises(NotImplementedError):
            strategy.get_pending_records([], None)
        with self.assertRaises(NotImplementedError):
            strategy.process_record(None, None)

    def test_update_config_accepts_both_spellings(self):
        """Test snake_case and camelCase keys"""
        strategy = MaintenanceStrategy('custom')
        strategy.update_config({'batchSize': 2, 'retry_count': 1, 'enabled': False, 'bogus': 1})
        self.assertEqual(strategy.batch_size, 2)
        self.assertEqual(strategy.retry_count, 1)
        self.assertFalse(strategy.enabled)
        self.assertFalse(hasattr(strategy, 'bogus'))

    def test_get_status(self):
        """Test the status dict"""
        strategy = MaintenanceStrategy('custom', priority=2)
        status = strategy.get_status()
        self.assertEqual(status['name'], 'custom')
        self.assertEqual(status['priority'], 2)
        self.assertIn('last_result', status)

    def test_process_result_to_dict(self):
        """Test that empty fields are omitted"""
        self.assertEqual(ProcessResult(success=True).to_dict(), {'success': True})
        self.assertEqual(
            ProcessResult(success=True, skipped=True, reason='short_video').to_dict(),
            {'success': True, 'skipped': True, 'reason': 'short_video'},
        )

    def test_context_log(self):
        """Test that context logging is optional"""
        messages = []
        StageContext(checker=None, data_dir='/tmp').log('ignored')
        StageContext(checker=None, data_dir='/tmp', logger=messages.append).log('hello')
        self.assertEqual(messages, ['hello'])

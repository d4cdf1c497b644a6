"""
Tests for service/workr.py
"""
from django.test import TestCase, override_settings
from unittest.mock import patch, MagicMock

from vault.service.workr import WorkrClient, WorkrError, get_workr_client


def http_response(status=200, data=None):
    mock = MagicMock()
    mock.status_code = status
    mock.ok = status < 400
    mock.json.return_value = data or {}
    return mock


class WorkrClientTest(TestCase):
    """Tests for the job queue client"""

    def setUp(self):
        self.client = WorkrClient('http://workr:3000/', timeout=5, poll_interval=0)

    @patch('vault.service.workr.requests.post')
    def test_submit_job(self, mock_post):
        """Test the job submission request"""
        mock_post.return_value = http_response(data={'jobId': 'j1'})

        job = self.client.submit_job('thumbnail', {'video_path': '/a.mp4'})

        self.assertEqual(job['jobId'], 'j1')
        self.assertEqual(mock_post.call_args[0][0], 'http://workr:3000/api/jobs')
        self.assertEqual(mock_post.call_args[1]['json']['type'], 'thumbnail')
        self.assertEqual(mock_post.call_args[1]['json']['payload'], {'video_path': '/a.mp4'})

    @patch('vault.service.workr.requests.post')
    def test_submit_error(self, mock_post):
        """Test that a rejected submission raises WorkrError with the server message"""
        mock_post.return_value = http_response(status=400, data={'error': 'bad payload'})
        with self.assertRaisesMessage(WorkrError, 'bad payload'):
            self.client.submit_job('hls', {})

    @patch('vault.service.workr.requests.get')
    def test_get_job_not_found(self, mock_get):
        """Test that an unknown job returns None"""
        mock_get.return_value = http_response(status=404)
        self.assertIsNone(self.client.get_job('missing'))

    @patch('vault.service.workr.requests.get')
    def test_wait_for_completed_job(self, mock_get):
        """Test polling until the job completes"""
        mock_get.side_effect = [
            http_response(data={'status': 'pending'}),
            http_response(data={'status': 'running'}),
            http_response(data={'status': 'completed', 'result': {'size': 10}}),
        ]
        self.assertEqual(self.client.wait_for_job('j1'), {'success': True, 'result': {'size': 10}})

    @patch('vault.service.workr.requests.get')
    def test_wait_for_failed_and_cancelled_jobs(self, mock_get):
        """Test that failed and cancelled jobs are reported as unsuccessful"""
        mock_get.return_value = http_response(data={'status': 'failed', 'error': 'ffmpeg died'})
        self.assertEqual(self.client.wait_for_job('j1'), {'success': False, 'error': 'ffmpeg died'})

        mock_get.return_value = http_response(data={'status': 'cancelled'})
        self.assertEqual(self.client.wait_for_job('j1'), {'success': False, 'error': 'Job was cancelled'})

    @patch('vault.service.workr.requests.get')
    def test_wait_timeout(self, mock_get):
        """Test that a job that never finishes raises WorkrError"""
        mock_get.return_value = http_response(data={'status': 'running'})
        with self.assertRaisesMessage(WorkrError, 'Job timeout'):
            self.client.wait_for_job('j1', timeout=0.05)

    @patch('vault.service.workr.requests.get')
    @patch('vault.service.workr.requests.post')
    def test_submit_and_wait(self, mock_post, mock_get):
        """Test the combined submit and poll"""
        mock_post.return_value = http_response(data={'jobId': 'j9'})
        mock_get.return_value = http_response(data={'status': 'completed', 'result': None})

        result = self.client.submit_and_wait('download', {'url': 'https://x/a.mp4'})

        self.assertTrue(result['success'])
        self.assertEqual(mock_get.call_args[0][0], 'http://workr:3000/api/jobs/j9')

    @override_settings(VAULT_WORKR_URL='')
    def test_client_disabled_without_url(self):
        """Test that no client is built when the URL is empty"""
        self.assertIsNone(get_workr_client())

    @override_settings(VAULT_WORKR_URL='http://workr:3000/', VAULT_WORKR_TIMEOUT=90)
    def test_client_from_settings(self):
        """Test the client built from settings"""
        client = get_workr_client()
        self.assertEqual(client.base_url, 'http://workr:3000')
        self.assertEqual(client.timeout, 90)

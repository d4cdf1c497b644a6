"""
Tests for service/download.py
"""
from django.test import TestCase, override_settings
from unittest.mock import patch, MagicMock
from pathlib import Path
import tempfile

import requests

from vault.service.config import get_cdn_referer
from vault.service.download import build_headers, download_file, header_variants, partial_path


def response(chunks, status=200):
    mock = MagicMock()
    mock.iter_content.return_value = chunks
    if status >= 400:
        mock.raise_for_status.side_effect = requests.HTTPError(f'{status} error')
    return mock


@override_settings(
    VAULT_DEFAULT_REFERER='https://lurl.cc/',
    VAULT_CDN_REFERERS={'myppt.cc': 'https://myppt.cc/', 'lurl.cc': 'https://lurl.cc/'},
)
class DownloadServiceTest(TestCase):
    """Tests for the direct downloader"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dest = Path(self._tmp.name) / 'videos' / 'a.mp4'

    def tearDown(self):
        self._tmp.cleanup()

    def test_cdn_referer(self):
        """Test referer selection by CDN host"""
        self.assertEqual(get_cdn_referer('https://cdn.myppt.cc/v/a.mp4'), 'https://myppt.cc/')
        self.assertEqual(get_cdn_referer('https://example.com/a.mp4'), 'https://lurl.cc/')

    def test_header_variants_order(self):
        """Test that cookies come first and the page referer last"""
        variants = header_variants(
            'https://cdn.myppt.cc/a.mp4', page_url='https://myppt.cc/p/1', cookies='sid=1'
        )
        self.assertEqual(
            variants,
            [
                ('cookie+referer', 'https://myppt.cc/', 'sid=1'),
                ('referer-only', 'https://myppt.cc/', ''),
                ('page-referer', 'https://myppt.cc/p/1', ''),
            ],
        )
        self.assertEqual(len(header_variants('https://cdn.lurl.cc/a.mp4')), 1)

    def test_build_headers(self):
        """Test browser-like headers"""
        headers = build_headers('https://lurl.cc/', 'sid=1')
        self.assertEqual(headers['Referer'], 'https://lurl.cc/')
        self.assertEqual(headers['Cookie'], 'sid=1')
        self.assertIn('Mozilla', headers['User-Agent'])
        self.assertNotIn('Cookie', build_headers())

    @patch('vault.service.download.requests.get')
    def test_download_success(self, mock_get):
        """Test streaming a file to disk"""
        mock_get.return_value = response([b'x' * 1500, b'y' * 600])

        self.assertTrue(download_file('https://cdn.lurl.cc/a.mp4', self.dest, timeout=5))

        self.assertEqual(self.dest.stat().st_size, 2100)
        headers = mock_get.call_args[1]['headers']
        self.assertEqual(headers['Referer'], 'https://lurl.cc/')
        self.assertTrue(mock_get.call_args[1]['stream'])

    @patch('vault.service.download.requests.get')
    def test_falls_back_to_page_referer(self, mock_get):
        """Test that a refused request is retried with the page as referer"""
        mock_get.side_effect = [response([], status=403), response([b'x' * 2048])]

        ok = download_file(
            'https://cdn.lurl.cc/a.mp4', self.dest, page_url='https://lurl.cc/p/1', timeout=5
        )

        self.assertTrue(ok)
        self.assertEqual(mock_get.call_count, 2)
        self.assertEqual(mock_get.call_args[1]['headers']['Referer'], 'https://lurl.cc/p/1')

    @patch('vault.service.download.requests.get')
    def test_too_small_is_failure(self, mock_get):
        """Test that an error page under 1 KiB is rejected and removed"""
        mock_get.return_value = response([b'<html>denied</html>'])

        self.assertFalse(download_file('https://cdn.lurl.cc/a.mp4', self.dest, timeout=5))
        self.assertFalse(self.dest.exists())
        self.assertFalse(partial_path(self.dest).exists())

    @patch('vault.service.download.requests.get')
    def test_failed_attempt_keeps_existing_file(self, mock_get):
        """Test that a download cut off midway never overwrites the file in place"""
        self.dest.parent.mkdir(parents=True)
        self.dest.write_bytes(b'z' * 3000)
        mock_get.return_value = response([b'x' * 1500])
        mock_get.return_value.iter_content.side_effect = requests.ConnectionError('reset')

        self.assertFalse(download_file('https://cdn.lurl.cc/a.mp4', self.dest, timeout=5))

        self.assertEqual(self.dest.read_bytes(), b'z' * 3000)
        self.assertFalse(partial_path(self.dest).exists())

    @patch('vault.service.download.requests.get')
    def test_connection_error(self, mock_get):
        """Test that connection errors return False"""
        mock_get.side_effect = requests.ConnectionError('refused')
        messages = []

        ok = download_file('https://cdn.lurl.cc/a.mp4', self.dest, timeout=5, logger=messages.append)

        self.assertFalse(ok)
        self.assertIn('All download attempts failed: https://cdn.lurl.cc/a.mp4', messages)

"""
Direct HTTP download of source media.

The source CDNs reject requests without a matching Referer, so each download
walks a short list of header variants until one of them is accepted.
"""
import os
from pathlib import Path

import requests

from vault.service.config import get_cdn_referer, get_download_timeout
from vault.service.constants import MIN_DOWNLOAD_BYTES


USER_AGENT = (
    'Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/143.0.0.0 Mobile Safari/537.36'
)


def build_headers(referer='', cookies=''):
    """Browser-like headers for a media request"""
    headers = {
        'User-Agent': USER_AGENT,
        'Accept': '*/*',
        'Accept-Language': 'zh-TW,zh;q=0.9,en-US;q=0.8,en;q=0.7',
        'Accept-Encoding': 'identity',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'Sec-Fetch-Dest': 'video',
        'Sec-Fetch-Mode': 'no-cors',
        'Sec-Fetch-Site': 'same-site',
        'Range': 'bytes=0-',
    }
    if referer:
        headers['Referer'] = referer
    if cookies:
        headers['Cookie'] = cookies
    return headers


def header_variants(url, page_url='', cookies=''):
    """
    Header variants to try, most likely to succeed first.

    Returns:
        list of (name, referer, cookies) tuples
    """
    cdn_referer = get_cdn_referer(url)
    variants = []
    if cookies:
        variants.append(('cookie+referer', cdn_referer, cookies))
    variants.append(('referer-only', cdn_referer, ''))
    if page_url and page_url != cdn_referer:
        variants.append(('page-referer', page_url, ''))
    return variants


def partial_path(dest_path):
    """Temporary path a download is streamed to before it is moved into place"""
    dest_path = Path(dest_path)
    return dest_path.with_name(dest_path.name + '.part')


def fetch_to_file(url, dest_path, headers, timeout=None, min_bytes=0):
    """
    Stream a URL to dest_path.

    The body is written to a .part file next to dest_path and only renamed
    into place once it is complete and at least min_bytes long, so dest_path
    never holds a truncated download.

    Returns:
        int: Bytes received

    Raises:
        requests.RequestException: On connection errors or HTTP errors
    """
    if timeout is None:
        timeout = get_download_timeout()

    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    part_path = partial_path(dest_path)

    try:
        response = requests.get(url, headers=headers, stream=True, timeout=timeout)
        response.raise_for_status()

        written = 0
        with open(part_path, 'wb') as f:
            for chunk in response.iter_content(chunk_size=8192):
                if chunk:
                    f.write(chunk)
                    written += len(chunk)

        if written >= min_bytes:
            os.replace(part_path, dest_path)
        return written
    finally:
        _remove_partial(part_path)


def download_file(url, dest_path, page_url='', cookies='', timeout=None, logger=None):
    """
    Download a media file, trying each header variant in turn.

    Args:
        url: Direct media URL
        dest_path: Output file path
        page_url: Page the media was captured from, used as a last-resort Referer
        cookies: Optional Cookie header captured with the media
        timeout: Per-request timeout in seconds
        logger: Optional callable(str) for logging

    Returns:
        bool: True when a file larger than the minimum size was written
    """
    def log(message):
        if logger:
            logger(message)

    dest_path = Path(dest_path)

    for name, referer, cookie in header_variants(url, page_url, cookies):
        log(f"Downloading {url} (headers: {name})")
        try:
            size = fetch_to_file(
                url, dest_path, build_headers(referer, cookie),
                timeout=timeout, min_bytes=MIN_DOWNLOAD_BYTES,
            )
        except requests.RequestException as e:
            log(f"Download attempt failed ({name}): {e}")
            continue

        if size < MIN_DOWNLOAD_BYTES:
            log(f"Download too small ({size} bytes), probably an error page")
            continue

        log(f"Downloaded {size} bytes to {dest_path}")
        return True

    log(f"All download attempts failed: {url}")
    return False


def _remove_partial(path):
    if path.exists():
        path.unlink()

"""
Headless browser download fallback.

Signed CDN URLs expire, so when a direct fetch is refused the capture page is
loaded in Chromium, the live media URL is read from the DOM, and the file is
fetched with the browser's own cookies and headers.
"""
import os
from pathlib import Path

from vault.service.config import get_browser_timeout
from vault.service.constants import MIN_DOWNLOAD_BYTES
from vault.service.download import partial_path


VIDEO_MARKERS = ('.mp4', '.mov', '.m3u8')

IMAGE_SELECTORS = [
    'img[src*="lurl"]',
    'img[src*="myppt"]',
    '.post-content img',
    'article img',
    'main img',
]

LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
]

# Returns the first video source matching a known container
FIND_VIDEO_JS = """
(markers) => {
    const nodes = document.querySelectorAll('video source, video');
    for (const node of nodes) {
        const src = node.src || node.getAttribute('src') || '';
        if (markers.some((m) => src.includes(m))) return src;
    }
    return null;
}
"""

FIND_IMAGE_JS = """
(selectors) => {
    for (const selector of selectors) {
        const img = document.querySelector(selector);
        if (img && img.src && !img.src.startsWith('data:')) return img.src;
    }
    let best = null;
    let bestArea = 0;
    for (const img of document.images) {
        const area = img.naturalWidth * img.naturalHeight;
        if (area > bestArea && img.src && !img.src.startsWith('data:')) {
            best = img.src;
            bestArea = area;
        }
    }
    return best;
}
"""


class BrowserFallback:
    """Playwright-driven page loader for downloads a plain HTTP client cannot do"""

    def __init__(self, timeout=None, headless=True, logger=None):
        self.timeout = timeout if timeout is not None else get_browser_timeout()
        self.headless = headless
        self.logger = logger

    def log(self, message):
        if self.logger:
            self.logger(message)

    def _open(self, playwright, referer=''):
        browser = playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        headers = {'Accept-Language': 'zh-TW,zh;q=0.9,en-US;q=0.8,en;q=0.7'}
        if referer:
            headers['Referer'] = referer
        context = browser.new_context(
            viewport={'width': 1280, 'height': 800},
            extra_http_headers=headers,
        )
        return browser, context

    def extract_media_from_page(self, page_url):
        """
        Load a capture page and read the media URL it currently serves.

        Returns:
            dict: {'success': True, 'url': ..., 'media_type': 'video'|'image'}
                  or {'success': False, 'error': ...}
        """
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright

        timeout_ms = int(self.timeout * 1000)
        try:
            with sync_playwright() as p:
                browser, context = self._open(p)
                try:
                    page = context.new_page()
                    page.goto(page_url, wait_until='networkidle', timeout=timeout_ms)
                    return self._find_media(page)
                finally:
                    browser.close()
        except PlaywrightError as e:
            self.log(f"Browser extraction failed: {e}")
            return {'success': False, 'error': str(e)}

    def _find_media(self, page):
        video_url = page.evaluate(FIND_VIDEO_JS, list(VIDEO_MARKERS))
        if video_url:
            return {'success': True, 'url': video_url, 'media_type': 'video'}

        image_url = page.evaluate(FIND_IMAGE_JS, IMAGE_SELECTORS)
        if image_url:
            return {'success': True, 'url': image_url, 'media_type': 'image'}

        return {'success': False, 'error': 'No media found on page'}

    def download_with_browser(self, url, dest_path, referer=''):
        """
        Fetch a media URL from inside a browser session.

        When referer is a capture page, the page is loaded first so that the
        live (freshly signed) media URL is used instead of the stored one.

        Returns:
            dict: {'success': True, 'size': ...} or {'success': False, 'error': ...}
        """
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright

        dest_path = Path(dest_path)
        timeout_ms = int(self.timeout * 1000)

        try:
            with sync_playwright() as p:
                browser, context = self._open(p, referer)
                try:
                    target = url
                    if referer:
                        page = context.new_page()
                        page.goto(referer, wait_until='networkidle', timeout=timeout_ms)
                        found = self._find_media(page)
                        if found['success']:
                            target = found['url']
                            self.log(f"Live media URL: {target}")

                    response = context.request.get(target, timeout=timeout_ms)
                    if not response.ok:
                        return {'success': False, 'error': f"HTTP {response.status}"}
                    body = response.body()
                finally:
                    browser.close()
        except PlaywrightError as e:
            self.log(f"Browser download failed: {e}")
            return {'success': False, 'error': str(e)}

        if len(body) < MIN_DOWNLOAD_BYTES:
            return {'success': False, 'error': f"Download too small ({len(body)} bytes)"}

        dest_path.parent.mkdir(parents=True, exist_ok=True)
        part_path = partial_path(dest_path)
        try:
            part_path.write_bytes(body)
            os.replace(part_path, dest_path)
        finally:
            if part_path.exists():
                part_path.unlink()
        self.log(f"Browser downloaded {len(body)} bytes to {dest_path}")
        return {'success': True, 'size': len(body)}

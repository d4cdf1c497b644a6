"""
High-level operations that can be used by tasks and management commands.

This module provides testable functions that encapsulate business logic,
making it easy to test operations without going through management commands.
"""

from vault.models import CaptureItem
from vault.service.record import OriginalStatus, Status


def capture_media(page_url, file_url, media_type=CaptureItem.MEDIA_TYPE_VIDEO, title='', logger=None):
    """
    Record a captured media URL so maintenance downloads and processes it.

    An existing item with the same page URL is reused: its file URL is
    replaced and its download is reset to pending so the next run fetches
    it again.

    Args:
        page_url: Page the media was found on
        file_url: Direct media URL
        media_type: 'video' or 'image'
        title: Optional title
        logger: Optional callable(message) for logging

    Returns:
        CaptureItem: The created or reused item

    Example:
        >>> item = capture_media('https://lurl.cc/abc', 'https://cdn.lurl.cc/abc.mp4')
        >>> print(item.id)
    """
    def log(message):
        if logger:
            logger(message)

    if media_type not in (CaptureItem.MEDIA_TYPE_VIDEO, CaptureItem.MEDIA_TYPE_IMAGE):
        raise ValueError(f"Unknown media type: {media_type}")

    existing_item = CaptureItem.objects.filter(page_url=page_url).first()

    if existing_item:
        # Reuse existing item
        item = existing_item
        item.file_url = file_url
        item.media_type = media_type
        if title:
            item.title = title
        item.download_status = Status.PENDING.value
        item.download_retries = 0
        item.download_error = None
        item.save()
        log(f'Reusing existing item: {item.id}')
        return item

    skipped = Status.SKIPPED.value
    item = CaptureItem.objects.create(
        page_url=page_url,
        file_url=file_url,
        media_type=media_type,
        title=title,
        download_status=Status.PENDING.value,
        original_status=OriginalStatus.MISSING.value,
        # Images have no derived artifacts
        thumbnail_status=skipped if media_type == CaptureItem.MEDIA_TYPE_IMAGE else Status.PENDING.value,
        preview_status=skipped if media_type == CaptureItem.MEDIA_TYPE_IMAGE else Status.PENDING.value,
        hls_status=skipped if media_type == CaptureItem.MEDIA_TYPE_IMAGE else Status.PENDING.value,
    )
    log(f'Created new item: {item.id}')
    return item

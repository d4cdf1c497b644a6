"""
Configuration adapter for maintenance settings.

Centralizes access to Django settings and environment variables,
ensuring consistent configuration across the scheduler, tasks and commands.
"""
from pathlib import Path
from urllib.parse import urlparse

from django.conf import settings

from vault.service.constants import HLS_FOLDER, LOGS_FOLDER


def get_data_dir():
    """Get the data directory holding backups, thumbnails and previews"""
    return Path(settings.VAULT_DATA_DIR)


def get_hls_dir():
    """Get the HLS output directory (defaults to <data dir>/hls)"""
    if settings.VAULT_HLS_DIR:
        return Path(settings.VAULT_HLS_DIR)
    return get_data_dir() / HLS_FOLDER


def get_maintenance_log_path():
    """Get the path of the maintenance log file"""
    return get_data_dir() / LOGS_FOLDER / 'maintenance.log'


def get_workr_url():
    """Get the job queue base URL, or '' when the queue is disabled"""
    return (settings.VAULT_WORKR_URL or '').rstrip('/')


def get_workr_timeout():
    return settings.VAULT_WORKR_TIMEOUT


def is_browser_fallback_enabled():
    return bool(settings.VAULT_BROWSER_FALLBACK)


def get_browser_timeout():
    return settings.VAULT_BROWSER_TIMEOUT


def get_download_timeout():
    return settings.VAULT_DOWNLOAD_TIMEOUT


def get_ffmpeg_timeout():
    return settings.VAULT_FFMPEG_TIMEOUT


def get_ffprobe_timeout():
    return settings.VAULT_FFPROBE_TIMEOUT


def is_autorun_enabled():
    return bool(settings.VAULT_MAINTENANCE_AUTORUN)


def get_cdn_referer(url):
    """
    Pick the Referer header a source CDN expects for a media URL.

    Args:
        url: Media URL

    Returns:
        str: Referer for the first configured host contained in the URL's
             host, otherwise VAULT_DEFAULT_REFERER

    Example:
        >>> get_cdn_referer('https://cdn.myppt.cc/v/abc.mp4')
        'https://myppt.cc/'
    """
    host = (urlparse(url).hostname or '').lower()
    for domain, referer in settings.VAULT_CDN_REFERERS.items():
        if host == domain or host.endswith('.' + domain):
            return referer
    return settings.VAULT_DEFAULT_REFERER

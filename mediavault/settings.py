"""
Django settings for the mediavault project.

Every VAULT_* value can be overridden with an environment variable of the
same name.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'mediavault-dev-key-change-me')
DEBUG = env_bool('DJANGO_DEBUG', True)
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'huey.contrib.djhuey',
    'vault',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DJANGO_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Background worker (python manage.py run_huey)
HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'mediavault',
    'filename': os.environ.get('VAULT_HUEY_DB', str(BASE_DIR / 'huey.sqlite3')),
    'immediate': env_bool('VAULT_HUEY_IMMEDIATE', False),
}

# Storage layout. Backups, thumbnails and previews live under the data dir,
# HLS output under VAULT_HLS_DIR (defaults to <data dir>/hls).
VAULT_DATA_DIR = os.environ.get('VAULT_DATA_DIR', str(BASE_DIR / 'data'))
VAULT_HLS_DIR = os.environ.get('VAULT_HLS_DIR', '')

# Remote job queue used as the second download mechanism and as the first
# choice for thumbnail/preview/HLS jobs. Empty disables it.
VAULT_WORKR_URL = os.environ.get('VAULT_WORKR_URL', '')
VAULT_WORKR_TIMEOUT = int(os.environ.get('VAULT_WORKR_TIMEOUT', '60'))

# Headless browser fallback for expired signed URLs
VAULT_BROWSER_FALLBACK = env_bool('VAULT_BROWSER_FALLBACK', False)
VAULT_BROWSER_TIMEOUT = int(os.environ.get('VAULT_BROWSER_TIMEOUT', '30'))

# Referer sent to the source CDNs; the first matching host wins
VAULT_DEFAULT_REFERER = os.environ.get('VAULT_DEFAULT_REFERER', 'https://lurl.cc/')
VAULT_CDN_REFERERS = {
    'myppt.cc': 'https://myppt.cc/',
    'lurl.cc': 'https://lurl.cc/',
}

# Timeouts for external calls, in seconds
VAULT_DOWNLOAD_TIMEOUT = int(os.environ.get('VAULT_DOWNLOAD_TIMEOUT', '60'))
VAULT_FFMPEG_TIMEOUT = int(os.environ.get('VAULT_FFMPEG_TIMEOUT', '1800'))
VAULT_FFPROBE_TIMEOUT = int(os.environ.get('VAULT_FFPROBE_TIMEOUT', '15'))

# Start the unattended maintenance timer when the scheduler is first built
VAULT_MAINTENANCE_AUTORUN = env_bool('VAULT_MAINTENANCE_AUTORUN', False)

"""
Media format constants.

Centralized definitions of file extensions, storage folders and the
short-video threshold.
"""

# Raw video containers a backup may be stored as. Only these can feed
# preview and HLS generation.
RAW_VIDEO_EXTENSIONS = ['.mp4', '.mov']

# Extensions accepted from a source URL when naming the backup file
VIDEO_EXTENSIONS = ['.mp4', '.mov', '.webm', '.avi']
IMAGE_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.gif', '.webp']

DEFAULT_VIDEO_EXTENSION = '.mp4'
DEFAULT_IMAGE_EXTENSION = '.jpg'

# Folders under the data directory
VIDEOS_FOLDER = 'videos'
IMAGES_FOLDER = 'images'
THUMBNAILS_FOLDER = 'thumbnails'
PREVIEWS_FOLDER = 'previews'
HLS_FOLDER = 'hls'
LOGS_FOLDER = 'logs'

MASTER_PLAYLIST = 'master.m3u8'

# Videos shorter than this get neither a preview nor an HLS ladder
SHORT_VIDEO_SECONDS = 10

# A downloaded backup smaller than this is treated as an error page
MIN_DOWNLOAD_BYTES = 1024

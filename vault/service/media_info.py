"""
Media metadata helpers.

Centralizes ffprobe parsing for the preview and HLS stages.
"""
import json
import subprocess
from dataclasses import dataclass

from vault.service.config import get_ffprobe_timeout


class MediaToolError(Exception):
    """ffmpeg or ffprobe failed, timed out or produced unusable output"""


@dataclass
class VideoInfo:
    """Dimensions and duration of a video file"""
    width: int
    height: int
    duration: float


# Assumed when a file has no readable video stream
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080


def run_ffprobe(file_path, timeout=None):
    """
    Run ffprobe and return its parsed JSON output.

    Raises:
        MediaToolError: If ffprobe fails, times out or prints invalid JSON
    """
    if timeout is None:
        timeout = get_ffprobe_timeout()

    try:
        result = subprocess.run(
            [
                'ffprobe',
                '-v', 'quiet',
                '-print_format', 'json',
                '-show_format',
                '-show_streams',
                str(file_path),
            ],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise MediaToolError(f"ffprobe timed out after {timeout}s: {file_path}")
    except OSError as e:
        raise MediaToolError(f"Failed to run ffprobe: {e}")

    if result.returncode != 0:
        raise MediaToolError(f"ffprobe failed with code {result.returncode}: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaToolError(f"Could not parse ffprobe output: {e}")


def probe_video(file_path, timeout=None):
    """
    Read width, height and duration of a video.

    Returns:
        VideoInfo
    """
    metadata = run_ffprobe(file_path, timeout=timeout)

    video_stream = next(
        (s for s in metadata.get('streams', []) if s.get('codec_type') == 'video'),
        {},
    )

    try:
        duration = float(metadata.get('format', {}).get('duration') or 0)
    except (TypeError, ValueError):
        duration = 0.0

    return VideoInfo(
        width=int(video_stream.get('width') or DEFAULT_WIDTH),
        height=int(video_stream.get('height') or DEFAULT_HEIGHT),
        duration=duration,
    )


def probe_duration(file_path, timeout=None):
    """Duration in seconds, or None if it cannot be read"""
    try:
        return probe_video(file_path, timeout=timeout).duration
    except MediaToolError:
        return None

"""
Derived artifact generation.

Frame capture, preview clips and the HLS quality ladder, all produced with
ffmpeg. Thumbnails are re-encoded to WebP with Pillow.
"""
from dataclasses import dataclass
from pathlib import Path
import subprocess

from vault.service.config import get_ffmpeg_timeout
from vault.service.constants import MASTER_PLAYLIST, SHORT_VIDEO_SECONDS
from vault.service.media_info import MediaToolError


THUMBNAIL_WIDTH = 320
THUMBNAIL_QUALITY = 75

PREVIEW_HEIGHT = 240
SHORT_PREVIEW_SECONDS = 3
LONG_PREVIEW_SECONDS = 6
LONG_VIDEO_SECONDS = 30

HLS_SEGMENT_SECONDS = 2


@dataclass(frozen=True)
class HlsQuality:
    """One tier of the HLS ladder"""
    name: str
    height: int
    bitrate: str
    audio_bitrate: str
    crf: int

    @property
    def bandwidth(self):
        """Bits per second, from a '5000k' style bitrate"""
        return int(self.bitrate.rstrip('k')) * 1000


HLS_QUALITIES = [
    HlsQuality('1080p', 1080, '5000k', '192k', 22),
    HlsQuality('720p', 720, '2500k', '128k', 23),
    HlsQuality('480p', 480, '1000k', '96k', 24),
]

# Always attempted, even when the source is smaller
FLOOR_HEIGHT = 480


@dataclass
class Rendition:
    """A tier scaled to a specific source"""
    quality: HlsQuality
    width: int
    height: int

    @property
    def playlist(self):
        return f"{self.quality.name}/playlist.m3u8"


def run_ffmpeg(args, timeout=None, logger=None):
    """
    Run ffmpeg with the given arguments.

    Args:
        args: Arguments after the 'ffmpeg' executable
        timeout: Seconds before the process is killed (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        subprocess.CompletedProcess

    Raises:
        MediaToolError: On a non-zero exit code or a timeout
    """
    def log(message):
        if logger:
            logger(message)

    if timeout is None:
        timeout = get_ffmpeg_timeout()

    cmd = ['ffmpeg'] + [str(a) for a in args]
    log(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise MediaToolError(f"ffmpeg timed out after {timeout}s")
    except OSError as e:
        raise MediaToolError(f"Failed to run ffmpeg: {e}")

    if result.returncode != 0:
        log(f"ffmpeg stderr: {result.stderr[-500:]}")
        raise MediaToolError(f"ffmpeg failed with code {result.returncode}")

    return result


def generate_video_thumbnail(video_path, thumbnail_path, logger=None):
    """
    Grab a frame one second in and store it as a compressed WebP.

    Args:
        video_path: Local video or HLS master playlist
        thumbnail_path: Output .webp path
        logger: Optional callable(str) for logging

    Returns:
        Path to the thumbnail
    """
    from PIL import Image

    def log(message):
        if logger:
            logger(message)

    thumbnail_path = Path(thumbnail_path)
    thumbnail_path.parent.mkdir(parents=True, exist_ok=True)
    frame_path = thumbnail_path.with_name(f"{thumbnail_path.stem}_temp.png")

    log(f"Extracting frame from {video_path}")
    try:
        run_ffmpeg([
            '-i', video_path,
            '-ss', '00:00:01',
            '-vframes', '1',
            '-vf', f'scale={THUMBNAIL_WIDTH}:-1',
            '-y',
            frame_path,
        ], logger=logger)

        if not frame_path.exists():
            raise MediaToolError('ffmpeg produced no frame')

        with Image.open(frame_path) as img:
            if img.mode not in ('RGB', 'RGBA'):
                img = img.convert('RGB')
            img.save(thumbnail_path, 'WEBP', quality=THUMBNAIL_QUALITY)
    finally:
        if frame_path.exists():
            frame_path.unlink()

    log(f"Thumbnail saved: {thumbnail_path}")
    return thumbnail_path


def preview_duration(video_duration):
    """
    Length of the preview clip for a video.

    Under 10s there is no preview, under 30s it is 3s, otherwise 6s.
    """
    if video_duration is None or video_duration < SHORT_VIDEO_SECONDS:
        return 0
    if video_duration < LONG_VIDEO_SECONDS:
        return SHORT_PREVIEW_SECONDS
    return LONG_PREVIEW_SECONDS


def generate_preview(input_path, output_path, duration, logger=None):
    """
    Cut a low resolution clip from the start of a video.

    Returns:
        Path to the preview clip
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    run_ffmpeg([
        '-i', input_path,
        '-t', duration,
        '-vf', f'scale=-2:{PREVIEW_HEIGHT}',
        '-c:v', 'libx264',
        '-profile:v', 'baseline',
        '-preset', 'fast',
        '-crf', '28',
        '-c:a', 'aac',
        '-b:a', '64k',
        '-movflags', '+faststart',
        '-y',
        output_path,
    ], logger=logger)

    if not output_path.exists():
        raise MediaToolError('ffmpeg produced no preview')
    return output_path


def scaled_width(source_width, source_height, target_height):
    """Width for target_height keeping the aspect ratio, rounded to even"""
    if not source_height:
        return source_width
    return int(round(source_width * (target_height / source_height) / 2)) * 2


def plan_renditions(video_info, qualities=None):
    """
    Pick the tiers worth producing for a source.

    Tiers taller than the source are dropped, except the floor tier which
    is always attempted (capped at the source height).
    """
    renditions = []
    for quality in qualities or HLS_QUALITIES:
        if video_info.height < quality.height and quality.height > FLOOR_HEIGHT:
            continue
        height = min(quality.height, video_info.height)
        width = scaled_width(video_info.width, video_info.height, height)
        renditions.append(Rendition(quality=quality, width=width, height=height))
    return renditions


def transcode_rendition(input_path, output_dir, rendition, logger=None):
    """Write one segmented stream into <output_dir>/<tier>/"""
    quality_dir = Path(output_dir) / rendition.quality.name
    quality_dir.mkdir(parents=True, exist_ok=True)
    playlist_path = quality_dir / 'playlist.m3u8'

    run_ffmpeg([
        '-i', input_path,
        '-vf', f'scale={rendition.width}:{rendition.height}',
        '-c:v', 'libx264',
        '-preset', 'fast',
        '-crf', rendition.quality.crf,
        '-c:a', 'aac',
        '-b:a', rendition.quality.audio_bitrate,
        '-hls_time', HLS_SEGMENT_SECONDS,
        '-hls_list_size', '0',
        '-hls_segment_filename', quality_dir / 'segment%03d.ts',
        '-hls_playlist_type', 'vod',
        '-y',
        playlist_path,
    ], logger=logger)

    return playlist_path


def write_master_playlist(output_dir, renditions):
    """Master playlist listing the given renditions"""
    lines = ['#EXTM3U', '#EXT-X-VERSION:3', '']
    for rendition in renditions:
        lines.append(
            f'#EXT-X-STREAM-INF:BANDWIDTH={rendition.quality.bandwidth},'
            f'RESOLUTION={rendition.width}x{rendition.height},'
            f'NAME="{rendition.quality.name}"'
        )
        lines.append(rendition.playlist)
        lines.append('')

    master_path = Path(output_dir) / MASTER_PLAYLIST
    master_path.write_text('\n'.join(lines))
    return master_path


def transcode_hls(input_path, output_dir, video_info, logger=None):
    """
    Produce the HLS ladder for a video.

    Tiers are transcoded one after another; a failed tier is logged and left
    out of the master playlist. The master playlist is only written when at
    least one tier was produced.

    Returns:
        list[Rendition]: the tiers actually produced
    """
    def log(message):
        if logger:
            logger(message)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    produced = []
    for rendition in plan_renditions(video_info):
        log(f"Transcoding {rendition.quality.name} ({rendition.width}x{rendition.height})")
        try:
            transcode_rendition(input_path, output_dir, rendition, logger=logger)
        except MediaToolError as e:
            log(f"{rendition.quality.name} failed: {e}")
            continue
        produced.append(rendition)

    if produced:
        write_master_playlist(output_dir, produced)

    return produced

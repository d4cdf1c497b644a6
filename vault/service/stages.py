"""
The five pipeline stages.

Each stage selects its pending records from status columns first and falls
back to the disk checks in RecordChecker for records whose status was never
set. Processing returns a ProcessResult; every exception is caught here and
reported as a failed result.
"""
import threading
from dataclasses import replace
from pathlib import Path
from urllib.parse import urlparse

from django.utils import timezone

from vault.service.constants import (
    DEFAULT_IMAGE_EXTENSION,
    DEFAULT_VIDEO_EXTENSION,
    HLS_FOLDER,
    IMAGE_EXTENSIONS,
    IMAGES_FOLDER,
    MASTER_PLAYLIST,
    MIN_DOWNLOAD_BYTES,
    PREVIEWS_FOLDER,
    SHORT_VIDEO_SECONDS,
    THUMBNAILS_FOLDER,
    VIDEO_EXTENSIONS,
    VIDEOS_FOLDER,
)
from vault.service.media_info import MediaToolError, probe_duration, probe_video
from vault.service.process import (
    generate_preview,
    generate_video_thumbnail,
    preview_duration,
    transcode_hls,
)
from vault.service.record import OriginalStatus, Status
from vault.service.strategy import MaintenanceStrategy, ProcessResult
from vault.service.workr import WorkrError


OPEN_STATUSES = (Status.PENDING.value, Status.FAILED.value)
DONE_STATUSES = (Status.COMPLETED.value, Status.SKIPPED.value)


def _unset(status):
    return not status or status == Status.UNKNOWN.value


def _try_workr(context, job_type, payload, output_path):
    """Run a job on the queue; True only if it succeeded and produced output_path"""
    if not context.workr:
        return False
    try:
        result = context.workr.submit_and_wait(job_type, payload)
    except (WorkrError, OSError, ValueError) as e:
        context.log(f"Workr {job_type} failed: {e}")
        return False
    if not result.get('success'):
        context.log(f"Workr {job_type} failed: {result.get('error')}")
        return False
    return Path(output_path).exists()


def destination_for(record):
    """
    Backup location for a record, relative to the data directory.

    The extension comes from the file URL when it is a known container,
    otherwise the type's default is used.
    """
    try:
        url_ext = Path(urlparse(record.file_url or '').path).suffix.lower()
    except ValueError:
        url_ext = ''

    if record.is_video:
        folder = VIDEOS_FOLDER
        ext = url_ext if url_ext in VIDEO_EXTENSIONS else DEFAULT_VIDEO_EXTENSION
    else:
        folder = IMAGES_FOLDER
        ext = url_ext if url_ext in IMAGE_EXTENSIONS else DEFAULT_IMAGE_EXTENSION

    return f"{folder}/{record.id}{ext}"


def _big_enough(path):
    path = Path(path)
    return path.exists() and path.stat().st_size >= MIN_DOWNLOAD_BYTES


class DownloadStrategy(MaintenanceStrategy):
    """Fetch missing originals: direct HTTP, then the job queue, then a browser"""

    FAILURE = 'All download strategies failed'

    def __init__(self, **options):
        defaults = {'priority': 1, 'batch_size': 5, 'interval': 1, 'retry_count': 3}
        defaults.update(options)
        super().__init__('download', **defaults)

    def get_pending_records(self, records, checker):
        pending = []
        for r in records:
            if r.download_status in OPEN_STATUSES:
                if r.file_url:
                    pending.append(r)
            elif _unset(r.download_status) and checker.needs_download(r):
                pending.append(r)
        return pending

    def process_record(self, record, context):
        if not record.file_url:
            return ProcessResult(success=False, error='No file URL')

        try:
            checker = context.checker
            has_original = (
                checker.has_local_video(record) if record.is_video
                else checker.has_local_image(record)
            )
            if has_original:
                return ProcessResult(
                    success=True,
                    updates=self._completed(record.backup_path),
                    skipped=True,
                    reason='already_present',
                )

            backup_path = destination_for(record)
            dest_path = Path(context.data_dir) / backup_path

            if _big_enough(dest_path):
                return ProcessResult(
                    success=True,
                    updates=self._completed(backup_path),
                    skipped=True,
                    reason='already_present',
                )

            if dest_path.exists():
                context.log(f"Discarding truncated download: {backup_path}")
                dest_path.unlink()

            if self._fetch(record, dest_path, context):
                context.log(f"Downloaded {record.id} to {backup_path}")
                return ProcessResult(success=True, updates=self._completed(backup_path))

            return self._failed(record, self.FAILURE)
        except Exception as e:
            return self._failed(record, str(e))

    def _fetch(self, record, dest_path, context):
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        if context.download_file:
            try:
                context.download_file(record.file_url, dest_path, record.page_url or '')
                if _big_enough(dest_path):
                    return True
            except Exception as e:
                context.log(f"Direct download failed: {e}")

        if _try_workr(context, 'download', {
            'url': record.file_url,
            'dest_path': str(dest_path),
            'referer': record.page_url,
        }, dest_path) and _big_enough(dest_path):
            return True

        if context.browser:
            try:
                result = context.browser.download_with_browser(
                    record.file_url, dest_path, record.page_url or ''
                )
                if result.get('success') and _big_enough(dest_path):
                    return True
            except Exception as e:
                context.log(f"Browser download failed: {e}")

        return False

    def _completed(self, backup_path):
        return {
            'backup_path': backup_path,
            'download_status': Status.COMPLETED.value,
            'download_error': None,
            'original_status': OriginalStatus.EXISTS.value,
            'last_processed_at': timezone.now(),
        }

    def _failed(self, record, error):
        return ProcessResult(
            success=False,
            error=error,
            updates={
                'download_status': Status.FAILED.value,
                'download_retries': (record.download_retries or 0) + 1,
                'download_error': error,
                'last_error_at': timezone.now(),
            },
        )


class ThumbnailStrategy(MaintenanceStrategy):
    """Grab a WebP still from each video; images are marked skipped"""

    def __init__(self, **options):
        defaults = {'priority': 2, 'batch_size': 20, 'interval': 0.5}
        defaults.update(options)
        super().__init__('thumbnail', **defaults)

    def get_pending_records(self, records, checker):
        pending = []
        for r in records:
            if not r.is_video:
                if r.thumbnail_status != Status.SKIPPED.value:
                    pending.append(r)
                continue
            if r.thumbnail_status in DONE_STATUSES:
                continue
            if checker.needs_thumbnail(r):
                pending.append(r)
        return pending

    def process_record(self, record, context):
        if not record.is_video:
            return ProcessResult(
                success=True,
                updates={'thumbnail_status': Status.SKIPPED.value},
                skipped=True,
                reason='image',
            )

        try:
            video_path = context.checker.get_video_source_path(record)
            if not video_path:
                return ProcessResult(success=False, error='No video source')

            thumbnail_path = f"{THUMBNAILS_FOLDER}/{record.id}.webp"
            output_path = Path(context.data_dir) / thumbnail_path

            if output_path.exists():
                return ProcessResult(
                    success=True,
                    updates=self._completed(thumbnail_path),
                    skipped=True,
                    reason='already_present',
                )

            output_path.parent.mkdir(parents=True, exist_ok=True)

            done = _try_workr(context, 'thumbnail', {
                'video_path': str(video_path),
                'output_path': str(output_path),
            }, output_path)

            if not done:
                try:
                    generate_video_thumbnail(video_path, output_path, logger=context.logger)
                    done = output_path.exists()
                except (MediaToolError, OSError) as e:
                    context.log(f"Local thumbnail failed: {e}")

            if done:
                return ProcessResult(success=True, updates=self._completed(thumbnail_path))

            return self._failed('Thumbnail generation failed')
        except Exception as e:
            return self._failed(str(e))

    def _completed(self, thumbnail_path):
        return {
            'thumbnail_path': thumbnail_path,
            'thumbnail_status': Status.COMPLETED.value,
            'last_processed_at': timezone.now(),
        }

    def _failed(self, error):
        return ProcessResult(
            success=False,
            error=error,
            updates={
                'thumbnail_status': Status.FAILED.value,
                'last_error_at': timezone.now(),
            },
        )


class PreviewStrategy(MaintenanceStrategy):
    """
    Cut a short low resolution clip from each long enough video.

    Short videos that still have their raw file are selected too, so they
    end up with a terminal 'skipped' instead of staying pending.
    """

    def __init__(self, **options):
        defaults = {'priority': 3, 'batch_size': 5, 'interval': 0.5}
        defaults.update(options)
        super().__init__('preview', **defaults)

    def get_pending_records(self, records, checker):
        pending = []
        for r in records:
            if not r.is_video or r.preview_status in DONE_STATUSES:
                continue
            if checker.needs_preview(r):
                pending.append(r)
            elif checker.is_short_video(r) and checker.has_local_video(r):
                pending.append(r)
        return pending

    def process_record(self, record, context):
        try:
            if not context.checker.has_local_video(record):
                return ProcessResult(success=False, error='No local video')

            if context.checker.is_short_video(record):
                return self._short(record.duration)

            video_path = Path(context.data_dir) / record.backup_path
            preview_path = f"{PREVIEWS_FOLDER}/{record.id}.mp4"
            output_path = Path(context.data_dir) / preview_path

            if output_path.exists():
                return ProcessResult(
                    success=True,
                    updates={
                        'preview_path': preview_path,
                        'preview_ready': True,
                        'preview_status': Status.COMPLETED.value,
                        'last_processed_at': timezone.now(),
                    },
                    skipped=True,
                    reason='already_present',
                )

            duration = record.duration or probe_duration(video_path)
            if not duration:
                return self._failed('Could not read video duration')
            clip_seconds = preview_duration(duration)
            if clip_seconds == 0:
                context.log(f"Skipping preview for {record.id}: too short ({duration}s)")
                return self._short(duration)

            output_path.parent.mkdir(parents=True, exist_ok=True)

            done = _try_workr(context, 'preview', {
                'video_path': str(video_path),
                'output_path': str(output_path),
                'duration': clip_seconds,
            }, output_path)

            if not done:
                try:
                    generate_preview(video_path, output_path, clip_seconds, logger=context.logger)
                    done = output_path.exists()
                except (MediaToolError, OSError) as e:
                    context.log(f"Local preview failed: {e}")

            if done:
                return ProcessResult(
                    success=True,
                    updates={
                        'preview_path': preview_path,
                        'preview_ready': True,
                        'preview_status': Status.COMPLETED.value,
                        'duration': duration,
                        'last_processed_at': timezone.now(),
                    },
                )

            return self._failed('Preview generation failed')
        except Exception as e:
            return self._failed(str(e))

    def _short(self, duration):
        updates = {
            'is_short_video': True,
            'preview_status': Status.SKIPPED.value,
            'last_processed_at': timezone.now(),
        }
        if duration:
            updates['duration'] = duration
        return ProcessResult(success=True, updates=updates, skipped=True, reason='short_video')

    def _failed(self, error):
        return ProcessResult(
            success=False,
            error=error,
            updates={
                'preview_status': Status.FAILED.value,
                'last_error_at': timezone.now(),
            },
        )


class HlsStrategy(MaintenanceStrategy):
    """Transcode each long video into the HLS quality ladder"""

    def __init__(self, **options):
        defaults = {'priority': 4, 'batch_size': 1, 'interval': 0}
        defaults.update(options)
        super().__init__('hls', **defaults)

    def get_pending_records(self, records, checker):
        pending = []
        for r in records:
            if r.hls_status in OPEN_STATUSES:
                if r.is_video and r.original_status == OriginalStatus.EXISTS.value:
                    pending.append(r)
            elif _unset(r.hls_status) and checker.needs_hls(r):
                pending.append(r)
        return pending

    def process_record(self, record, context):
        try:
            checker = context.checker
            if not checker.has_local_video(record):
                return ProcessResult(success=False, error='No local video')

            if checker.is_short_video(record):
                return self._short(record, record.duration)

            input_path = Path(context.data_dir) / record.backup_path
            output_dir = Path(context.hls_dir or Path(context.data_dir) / HLS_FOLDER) / record.id
            master_path = output_dir / MASTER_PLAYLIST

            if master_path.exists():
                return ProcessResult(
                    success=True,
                    updates={
                        'hls_ready': True,
                        'hls_path': self._hls_path(record),
                        'hls_status': Status.COMPLETED.value,
                        'last_processed_at': timezone.now(),
                    },
                    skipped=True,
                    reason='already_present',
                )

            video_info = probe_video(input_path)
            if not video_info.duration:
                # ffprobe could not read a duration; a zero here says nothing about length
                if not record.duration:
                    return self._failed('Could not read video duration')
                video_info = replace(video_info, duration=record.duration)
            context.log(
                f"HLS {record.id}: {video_info.width}x{video_info.height}, {video_info.duration}s"
            )

            if video_info.duration < SHORT_VIDEO_SECONDS:
                return self._short(record, video_info.duration)

            done = _try_workr(context, 'hls', {
                'input_path': str(input_path),
                'output_dir': str(output_dir),
            }, master_path)

            if not done:
                transcode_hls(input_path, output_dir, video_info, logger=context.logger)
                done = master_path.exists()

            if done:
                return ProcessResult(
                    success=True,
                    updates={
                        'hls_ready': True,
                        'hls_path': self._hls_path(record),
                        'hls_status': Status.COMPLETED.value,
                        'is_short_video': False,
                        'duration': video_info.duration,
                        'last_processed_at': timezone.now(),
                    },
                )

            return self._failed('HLS transcoding failed')
        except Exception as e:
            return self._failed(str(e))

    def _hls_path(self, record):
        return f"{HLS_FOLDER}/{record.id}/{MASTER_PLAYLIST}"

    def _short(self, record, duration):
        updates = {
            'is_short_video': True,
            'hls_ready': False,
            'hls_status': Status.SKIPPED.value,
            'last_processed_at': timezone.now(),
        }
        # A preview that was produced stays completed
        if record.preview_status != Status.COMPLETED.value:
            updates['preview_ready'] = False
            updates['preview_status'] = Status.SKIPPED.value
        if duration:
            updates['duration'] = duration
        return ProcessResult(success=True, updates=updates, skipped=True, reason='short_video')

    def _failed(self, error):
        return ProcessResult(
            success=False,
            error=error,
            updates={
                'hls_status': Status.FAILED.value,
                'last_error_at': timezone.now(),
            },
        )


class CleanupStrategy(MaintenanceStrategy):
    """
    Delete original backups once every derivative exists.

    Records touched earlier in the current run are left for the next run,
    so a record's preview and HLS are always observed completed in a run
    before its original is removed.
    """

    def __init__(self, **options):
        defaults = {'priority': 5, 'batch_size': 10, 'interval': 0.1}
        defaults.update(options)
        super().__init__('cleanup', **defaults)
        self.freed_bytes = 0
        self._freed_lock = threading.Lock()

    def get_pending_records(self, records, checker):
        pending = []
        for r in records:
            if self._touched_this_run(r):
                continue
            if (r.hls_status == Status.COMPLETED.value
                    and r.original_status == OriginalStatus.EXISTS.value):
                if checker.is_short_video(r) or r.preview_status == Status.COMPLETED.value:
                    pending.append(r)
            elif (_unset(r.hls_status) or not r.original_status) and checker.can_cleanup_original(r):
                pending.append(r)
        return pending

    def _touched_this_run(self, record):
        if self.run_started_at is None or record.last_processed_at is None:
            return False
        return record.last_processed_at >= self.run_started_at

    def before_process(self, records, context=None):
        self.freed_bytes = 0

    def process_record(self, record, context):
        try:
            if not context.checker.can_cleanup_original(record):
                return ProcessResult(success=False, error='Not safe to cleanup')

            original = Path(context.data_dir) / record.backup_path
            updates = {
                'backup_path': None,
                'original_status': OriginalStatus.CLEANED.value,
                'last_processed_at': timezone.now(),
            }

            if not original.exists():
                return ProcessResult(success=True, updates=updates, skipped=True, reason='already_deleted')

            size = original.stat().st_size
            original.unlink()
            with self._freed_lock:
                self.freed_bytes += size
            context.log(f"Deleted {record.backup_path} ({size / (1024 * 1024):.2f}MB)")

            return ProcessResult(success=True, updates=updates)
        except Exception as e:
            return ProcessResult(
                success=False,
                error=str(e),
                updates={'last_error_at': timezone.now()},
            )

    def after_process(self, results, context=None):
        if context and results.get('success'):
            context.log(
                f"Cleanup finished: {results['success']} files, "
                f"{self.freed_bytes / (1024 * 1024):.2f}MB freed"
            )


def default_strategies():
    """One instance of every stage, in priority order"""
    return [
        DownloadStrategy(),
        ThumbnailStrategy(),
        PreviewStrategy(),
        HlsStrategy(),
        CleanupStrategy(),
    ]

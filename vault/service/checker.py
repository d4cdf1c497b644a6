"""
Artifact existence checks.

RecordChecker answers, for one MediaRecord, which derived artifacts are
really on disk and which pipeline stages still apply. Every predicate is
read-only; sync_record_status() only computes the field updates needed to
bring the stored statuses back in line with the disk.
"""
from pathlib import Path

from vault.service.constants import (
    MASTER_PLAYLIST,
    RAW_VIDEO_EXTENSIONS,
    SHORT_VIDEO_SECONDS,
)
from vault.service.record import (
    STATUS_FIELDS,
    OriginalStatus,
    Status,
)


class RecordChecker:
    """Filesystem-backed predicates over MediaRecord snapshots"""

    def __init__(self, data_dir, hls_dir=None):
        self.data_dir = Path(data_dir)
        self.hls_dir = Path(hls_dir) if hls_dir else self.data_dir / 'hls'

    def _exists(self, relative_path):
        if not relative_path:
            return False
        return (self.data_dir / relative_path).exists()

    def master_playlist_path(self, record):
        return self.hls_dir / record.id / MASTER_PLAYLIST

    def is_short_video(self, record):
        """Flagged short, or a known duration under the threshold"""
        if record.is_short_video:
            return True
        return record.duration is not None and record.duration < SHORT_VIDEO_SECONDS

    def has_local_video(self, record):
        """Raw MP4/MOV backup present on disk"""
        if not record.backup_path:
            return False
        if Path(record.backup_path).suffix.lower() not in RAW_VIDEO_EXTENSIONS:
            return False
        return self._exists(record.backup_path)

    def has_local_image(self, record):
        return self._exists(record.backup_path)

    def has_hls(self, record):
        if not record.hls_ready:
            return False
        return self.master_playlist_path(record).exists()

    def has_playable_video(self, record):
        return self.has_local_video(record) or self.has_hls(record)

    def has_thumbnail(self, record):
        return self._exists(record.thumbnail_path)

    def has_preview(self, record):
        return self._exists(record.preview_path)

    def has_local_file(self, record):
        if record.is_video:
            return self.has_playable_video(record)
        return self.has_local_image(record)

    def needs_download(self, record):
        if not record.file_url:
            return False
        if record.is_video:
            return not self.has_playable_video(record)
        return not self.has_local_image(record)

    def needs_thumbnail(self, record):
        """A video without a thumbnail that has something to grab a frame from"""
        if not record.is_video:
            return False
        if self.has_thumbnail(record):
            return False
        return self.has_playable_video(record)

    def needs_preview(self, record):
        """Previews are cut from the raw file, never from the HLS ladder"""
        if not record.is_video:
            return False
        if self.is_short_video(record):
            return False
        if self.has_preview(record):
            return False
        return self.has_local_video(record)

    def needs_hls(self, record):
        if not record.is_video:
            return False
        if record.hls_ready:
            return False
        if self.is_short_video(record):
            return False
        return self.has_local_video(record)

    def can_cleanup_original(self, record):
        """Every derivative that depends on the original exists on disk"""
        if not record.is_video:
            return False
        if not record.hls_ready or not self.has_hls(record):
            return False
        if not self.is_short_video(record) and not self.has_preview(record):
            return False
        return self.has_local_video(record)

    def get_video_source_path(self, record):
        """Local backup first, then the HLS master playlist"""
        if self.has_local_video(record):
            return self.data_dir / record.backup_path
        if self.has_hls(record):
            return self.master_playlist_path(record)
        return None

    def expected_statuses(self, record):
        """
        Recompute every status field from the disk.

        Statuses with no disk fact behind them (pending, failed) are kept
        as they are, so the result is stable across repeated calls.
        """
        expected = {}

        if record.is_video:
            has_local = self.has_local_video(record)
            has_stream = self.has_hls(record)
            if has_local:
                expected['original_status'] = OriginalStatus.EXISTS.value
            elif has_stream:
                expected['original_status'] = OriginalStatus.CLEANED.value
            else:
                expected['original_status'] = OriginalStatus.MISSING.value
            has_source = has_local or has_stream
        else:
            has_source = self.has_local_image(record)
            expected['original_status'] = (
                OriginalStatus.EXISTS.value if has_source else OriginalStatus.MISSING.value
            )

        expected['download_status'] = self._expected_download(record, has_source)

        if not record.is_video:
            expected['thumbnail_status'] = Status.SKIPPED.value
            expected['preview_status'] = Status.SKIPPED.value
            expected['hls_status'] = Status.SKIPPED.value
            return expected

        expected['thumbnail_status'] = self._expected_stage(
            record.thumbnail_status, self.has_thumbnail(record)
        )

        if self.is_short_video(record):
            expected['preview_status'] = Status.SKIPPED.value
            expected['hls_status'] = Status.SKIPPED.value
        else:
            expected['preview_status'] = self._expected_stage(
                record.preview_status, self.has_preview(record)
            )
            expected['hls_status'] = self._expected_stage(
                record.hls_status, self.has_hls(record)
            )

        return expected

    def _expected_download(self, record, has_source):
        if has_source:
            return Status.COMPLETED.value
        current = record.download_status
        if current == Status.FAILED:
            return Status.FAILED.value
        if record.file_url:
            return Status.PENDING.value
        # Nothing on disk and nothing to fetch it from
        return Status.FAILED.value

    def _expected_stage(self, current, has_artifact):
        if has_artifact:
            return Status.COMPLETED.value
        if current == Status.FAILED:
            return Status.FAILED.value
        return Status.PENDING.value

    def sync_record_status(self, record, force=False):
        """
        Compute the status updates needed to match the disk.

        Args:
            record: MediaRecord snapshot
            force: Return every status field, not only those that changed

        Returns:
            dict: field -> new value; empty when the record is already in sync
        """
        expected = self.expected_statuses(record)
        if force:
            return expected
        return {
            name: value
            for name, value in expected.items()
            if getattr(record, name) != value
        }

    def analyze_records(self, records):
        """Disk-based breakdown of what every stage still has to do"""
        stats = {
            'total': len(records),
            'videos': 0,
            'images': 0,
            'needs_download': [],
            'needs_thumbnail': [],
            'needs_preview': [],
            'needs_hls': [],
            'can_cleanup': [],
            'missing_files': [],
        }

        for record in records:
            if record.is_video:
                stats['videos'] += 1
            else:
                stats['images'] += 1

            if self.needs_download(record):
                stats['needs_download'].append(record)
            if self.needs_thumbnail(record):
                stats['needs_thumbnail'].append(record)
            if self.needs_preview(record):
                stats['needs_preview'].append(record)
            if self.needs_hls(record):
                stats['needs_hls'].append(record)
            if self.can_cleanup_original(record):
                stats['can_cleanup'].append(record)
            if not self.has_local_file(record):
                stats['missing_files'].append(record)

        return stats

    def analyze_records_by_status(self, records):
        """Status-column histogram; does not touch the disk"""
        stats = {
            'total': len(records),
            'videos': 0,
            'images': 0,
            'by_status': {name: {} for name in STATUS_FIELDS},
            'pending': {
                'download': 0,
                'thumbnail': 0,
                'preview': 0,
                'hls': 0,
                'cleanup': 0,
            },
        }
        open_statuses = (Status.PENDING, Status.FAILED)

        for record in records:
            if record.is_video:
                stats['videos'] += 1
            else:
                stats['images'] += 1

            for name in STATUS_FIELDS:
                value = getattr(record, name) or Status.UNKNOWN.value
                bucket = stats['by_status'][name]
                bucket[value] = bucket.get(value, 0) + 1

            if record.download_status in open_statuses:
                stats['pending']['download'] += 1
            if record.thumbnail_status in open_statuses:
                stats['pending']['thumbnail'] += 1
            if record.preview_status in open_statuses:
                stats['pending']['preview'] += 1
            if record.hls_status in open_statuses:
                stats['pending']['hls'] += 1
            if (record.hls_status == Status.COMPLETED
                    and record.original_status == OriginalStatus.EXISTS):
                stats['pending']['cleanup'] += 1

        return stats

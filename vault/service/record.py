"""
Media record snapshot.

A MediaRecord is the plain-data view of one captured item that the checker,
the strategies and the scheduler pass around. The catalog converts its rows
to and from this shape; nothing in the service layer touches storage.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class Status(str, Enum):
    """Per-stage processing status"""
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    UNKNOWN = 'unknown'


class OriginalStatus(str, Enum):
    """Whether the original backup file is on disk"""
    MISSING = 'missing'
    EXISTS = 'exists'
    CLEANED = 'cleaned'


MEDIA_TYPE_VIDEO = 'video'
MEDIA_TYPE_IMAGE = 'image'

# Fields written by the reconciler
STATUS_FIELDS = (
    'download_status',
    'thumbnail_status',
    'preview_status',
    'hls_status',
    'original_status',
)


@dataclass
class MediaRecord:
    """Snapshot of one captured item"""
    id: str
    media_type: str = MEDIA_TYPE_VIDEO
    title: str = ''

    # Source
    page_url: str = ''
    file_url: str = ''

    # Artifacts, relative to the data directory
    backup_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    preview_path: Optional[str] = None
    hls_path: Optional[str] = None

    # Derived facts
    duration: Optional[float] = None
    is_short_video: bool = False
    hls_ready: bool = False
    preview_ready: bool = False

    # Per-stage status
    download_status: Optional[str] = Status.PENDING.value
    thumbnail_status: Optional[str] = Status.PENDING.value
    preview_status: Optional[str] = Status.PENDING.value
    hls_status: Optional[str] = Status.PENDING.value
    original_status: Optional[str] = OriginalStatus.MISSING.value

    # Bookkeeping
    download_retries: int = 0
    download_error: Optional[str] = None
    last_processed_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None

    extra: dict = field(default_factory=dict)

    @property
    def is_video(self):
        return self.media_type == MEDIA_TYPE_VIDEO

    @classmethod
    def field_names(cls):
        return {f.name for f in fields(cls)} - {'extra'}

    @classmethod
    def from_dict(cls, data):
        """Build a snapshot from a dict; unknown keys are kept in extra"""
        known = cls.field_names()
        values = {k: _plain(v) for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        return cls(extra=extra, **values)

    def to_dict(self):
        data = {name: getattr(self, name) for name in self.field_names()}
        data.update(self.extra)
        return data

    def apply(self, updates):
        """Return a new snapshot with the given field updates merged in"""
        known = self.field_names()
        values = {k: _plain(v) for k, v in updates.items() if k in known}
        merged = replace(self, **values)
        merged.extra = {**self.extra, **{k: v for k, v in updates.items() if k not in known}}
        return merged


def _plain(value):
    """Store enum members as their string value"""
    if isinstance(value, Enum):
        return value.value
    return value

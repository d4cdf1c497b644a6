import time

from django.db import models
from nanoid import generate

from vault.service.record import MediaRecord, OriginalStatus, Status


BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


def _base36(number):
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36[remainder])
    return ''.join(reversed(digits))


def generate_record_id():
    """Millisecond timestamp in base36 followed by an 8 character NanoID"""
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
    return _base36(int(time.time() * 1000)) + generate(alphabet, size=8)


class CaptureItem(models.Model):
    """Media captured from a source page and tracked through maintenance"""

    MEDIA_TYPE_VIDEO = "video"
    MEDIA_TYPE_IMAGE = "image"

    MEDIA_TYPE_CHOICES = [
        (MEDIA_TYPE_VIDEO, "Video"),
        (MEDIA_TYPE_IMAGE, "Image"),
    ]

    STATUS_CHOICES = [
        (Status.PENDING.value, "Pending"),
        (Status.COMPLETED.value, "Completed"),
        (Status.FAILED.value, "Failed"),
        (Status.SKIPPED.value, "Skipped"),
        (Status.UNKNOWN.value, "Unknown"),
    ]

    ORIGINAL_STATUS_CHOICES = [
        (OriginalStatus.MISSING.value, "Missing"),
        (OriginalStatus.EXISTS.value, "Exists"),
        (OriginalStatus.CLEANED.value, "Cleaned"),
    ]

    # Primary key
    id = models.CharField(
        max_length=32, primary_key=True, default=generate_record_id, editable=False
    )

    media_type = models.CharField(
        max_length=10, choices=MEDIA_TYPE_CHOICES, default=MEDIA_TYPE_VIDEO
    )
    title = models.CharField(max_length=500, blank=True)

    # Source
    page_url = models.URLField(max_length=2048, blank=True, db_index=True)
    file_url = models.URLField(max_length=2048, blank=True)

    # Artifacts (relative to VAULT_DATA_DIR)
    backup_path = models.CharField(max_length=500, null=True, blank=True)
    thumbnail_path = models.CharField(max_length=500, null=True, blank=True)
    preview_path = models.CharField(max_length=500, null=True, blank=True)
    hls_path = models.CharField(max_length=500, null=True, blank=True)

    # Derived facts
    duration = models.FloatField(null=True, blank=True)
    is_short_video = models.BooleanField(default=False)
    hls_ready = models.BooleanField(default=False)
    preview_ready = models.BooleanField(default=False)

    # Per-stage status
    download_status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=Status.PENDING.value,
        null=True, blank=True, db_index=True
    )
    thumbnail_status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=Status.PENDING.value,
        null=True, blank=True, db_index=True
    )
    preview_status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=Status.PENDING.value,
        null=True, blank=True, db_index=True
    )
    hls_status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=Status.PENDING.value,
        null=True, blank=True, db_index=True
    )
    original_status = models.CharField(
        max_length=20, choices=ORIGINAL_STATUS_CHOICES, default=OriginalStatus.MISSING.value,
        null=True, blank=True, db_index=True
    )

    # Bookkeeping
    download_retries = models.IntegerField(default=0)
    download_error = models.TextField(null=True, blank=True)
    last_processed_at = models.DateTimeField(null=True, blank=True)
    last_error_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title or self.page_url} ({self.id})"

    @classmethod
    def record_fields(cls):
        """Model fields that have a MediaRecord counterpart"""
        return sorted(MediaRecord.field_names())

    def to_record(self):
        return MediaRecord.from_dict({
            name: getattr(self, name) for name in self.record_fields()
        })


class MaintenanceState(models.Model):
    """Durable JSON documents for the maintenance scheduler (config, history)"""

    key = models.CharField(max_length=100, primary_key=True)
    data = models.JSONField(default=dict)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

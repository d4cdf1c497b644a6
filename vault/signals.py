import shutil

from django.db.models.signals import pre_delete
from django.dispatch import receiver

from vault.models import CaptureItem
from vault.service.config import get_data_dir, get_hls_dir


@receiver(pre_delete, sender=CaptureItem)
def cleanup_capture_files(sender, instance, **kwargs):
    """
    Delete the backup, thumbnail, preview and HLS ladder of a deleted item.
    This handles both single and bulk deletions.
    """
    data_dir = get_data_dir()
    for relative in (instance.backup_path, instance.thumbnail_path, instance.preview_path):
        if not relative:
            continue
        path = data_dir / relative
        try:
            if path.is_file():
                path.unlink()
        except OSError as e:
            # Log error but continue with deletion
            print(f"Error deleting {path}: {e}")

    hls_dir = get_hls_dir() / instance.id
    if hls_dir.exists():
        try:
            shutil.rmtree(hls_dir)
        except OSError as e:
            print(f"Error deleting directory {hls_dir}: {e}")

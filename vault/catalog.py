"""
Record catalog accessors.

The maintenance core only sees the record functions below. Updates to one
record are serialized in-process by a per-record lock and in the database by
select_for_update(); updates to different records never wait on each other.
"""
import threading
from contextlib import contextmanager

from django.db import connection, transaction

from vault.models import CaptureItem


_record_locks = {}
_locks_guard = threading.Lock()


@contextmanager
def _record_lock(record_id):
    """Hold the in-process lock for one record; idle locks are dropped"""
    with _locks_guard:
        entry = _record_locks.get(record_id)
        if entry is None:
            entry = _record_locks[record_id] = [threading.Lock(), 0]
        entry[1] += 1

    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _record_locks[record_id]


def close_connection():
    """Close this thread's database connection"""
    connection.close()


def read_all_records():
    """Snapshot of every captured item as MediaRecord objects"""
    return [item.to_record() for item in CaptureItem.objects.all()]


def get_record(record_id):
    """MediaRecord for one item, or None"""
    item = CaptureItem.objects.filter(id=record_id).first()
    return item.to_record() if item else None


def update_record(record_id, updates):
    """
    Apply a partial update to one record atomically.

    Only the given fields are written; keys that are not catalog fields are
    ignored.

    Returns:
        MediaRecord after the update, or None if the record does not exist
    """
    allowed = set(CaptureItem.record_fields()) - {'id'}
    fields = {k: v for k, v in updates.items() if k in allowed}

    with _record_lock(record_id):
        with transaction.atomic():
            item = CaptureItem.objects.select_for_update().filter(id=record_id).first()
            if item is None:
                return None
            if fields:
                for name, value in fields.items():
                    setattr(item, name, value)
                item.save(update_fields=list(fields) + ['updated_at'])
            return item.to_record()

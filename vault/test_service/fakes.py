"""
In-memory stand-ins for the catalog and the state store, plus helpers for
laying out artifacts in a temporary data directory.
"""
import copy
import threading
from pathlib import Path

from vault.service.record import MediaRecord


class FakeCatalog:
    """Dict-backed catalog with the same accessors as vault.catalog"""

    def __init__(self, records=()):
        self.records = {r.id: r for r in records}
        self.updates = []
        self._lock = threading.Lock()

    def read_all_records(self):
        with self._lock:
            return list(self.records.values())

    def get_record(self, record_id):
        with self._lock:
            return self.records.get(record_id)

    def update_record(self, record_id, updates):
        with self._lock:
            self.updates.append((record_id, dict(updates)))
            record = self.records[record_id].apply(updates)
            self.records[record_id] = record
            return record


class MemoryStore:
    def __init__(self, initial=None):
        self.data = copy.deepcopy(initial or {})
        self.saves = []

    def load(self, key, default=None):
        if key not in self.data:
            return default
        return copy.deepcopy(self.data[key])

    def save(self, key, value):
        self.data[key] = copy.deepcopy(value)
        self.saves.append(key)


def write_file(data_dir, relative, size=2048):
    path = Path(data_dir) / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b'\0' * size)
    return path


def write_master(hls_dir, record_id):
    path = Path(hls_dir) / record_id / 'master.m3u8'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('#EXTM3U\n')
    return path


def video(record_id='v1', **fields):
    defaults = {
        'id': record_id,
        'media_type': 'video',
        'page_url': f'https://lurl.cc/{record_id}',
        'file_url': f'https://cdn.lurl.cc/{record_id}.mp4',
    }
    defaults.update(fields)
    return MediaRecord(**defaults)


def image(record_id='i1', **fields):
    defaults = {
        'id': record_id,
        'media_type': 'image',
        'page_url': f'https://lurl.cc/{record_id}',
        'file_url': f'https://cdn.lurl.cc/{record_id}.jpg',
        'thumbnail_status': 'skipped',
        'preview_status': 'skipped',
        'hls_status': 'skipped',
    }
    defaults.update(fields)
    return MediaRecord(**defaults)

"""
Durable key/value state for the maintenance scheduler.
"""
from vault.models import MaintenanceState


class DatabaseStateStore:
    """Stores JSON documents in MaintenanceState rows"""

    def load(self, key, default=None):
        row = MaintenanceState.objects.filter(key=key).first()
        if row is None:
            return default
        return row.data

    def save(self, key, value):
        MaintenanceState.objects.update_or_create(key=key, defaults={'data': value})

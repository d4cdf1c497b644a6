"""
Maintenance strategy contract.

A strategy is one pipeline stage: it selects the records it still has work
for and processes one record at a time. Strategies never write to the
catalog themselves; they return the field updates and the scheduler applies
them.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


@dataclass
class ProcessResult:
    """Outcome of processing one record"""
    success: bool
    updates: dict = field(default_factory=dict)
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None

    def to_dict(self):
        data = {'success': self.success}
        if self.updates:
            data['updates'] = self.updates
        if self.error:
            data['error'] = self.error
        if self.skipped:
            data['skipped'] = True
        if self.reason:
            data['reason'] = self.reason
        return data


@dataclass
class StageContext:
    """Collaborators handed to process_record()"""
    checker: Any
    data_dir: Any
    hls_dir: Any = None
    update_record: Optional[Callable] = None
    download_file: Optional[Callable] = None
    workr: Any = None
    browser: Any = None
    logger: Optional[Callable] = None

    def log(self, message):
        if self.logger:
            self.logger(message)


# Accepted spellings for update_config()
CONFIG_KEYS = {
    'priority': 'priority',
    'batch_size': 'batch_size',
    'batchSize': 'batch_size',
    'interval': 'interval',
    'enabled': 'enabled',
    'retry_count': 'retry_count',
    'retryCount': 'retry_count',
}


class MaintenanceStrategy:
    """
    Base class for pipeline stages.

    Subclasses implement get_pending_records() and process_record().
    Lower priority values run first.
    """

    def __init__(self, name, priority=5, batch_size=10, interval=0, enabled=True, retry_count=3):
        self.name = name
        self.priority = priority
        self.batch_size = batch_size
        self.interval = interval
        self.enabled = enabled
        self.retry_count = retry_count
        self.last_run = None
        self.last_result = None
        self.run_started_at = None

    def get_pending_records(self, records, checker):
        """Records this stage still has work for. Must not modify anything."""
        raise NotImplementedError('Subclass must implement get_pending_records')

    def process_record(self, record, context):
        """
        Do this stage's work for one record.

        Returns:
            ProcessResult
        """
        raise NotImplementedError('Subclass must implement process_record')

    def begin_run(self, started_at):
        """Called by the scheduler when a run that includes this stage starts"""
        self.run_started_at = started_at

    def before_process(self, records, context=None):
        pass

    def after_process(self, results, context=None):
        pass

    def update_config(self, config):
        for key, value in config.items():
            attr = CONFIG_KEYS.get(key)
            if attr and value is not None:
                setattr(self, attr, value)

    def get_status(self):
        return {
            'name': self.name,
            'priority': self.priority,
            'batch_size': self.batch_size,
            'interval': self.interval,
            'enabled': self.enabled,
            'retry_count': self.retry_count,
            'last_run': self.last_run,
            'last_result': self.last_result,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name} priority={self.priority}>"

"""
Scheduler lifecycle events.

Events are queued by emit() and delivered to listeners from a daemon
thread, so a slow or broken listener never stalls the run loop.
"""
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum


class EventKind(str, Enum):
    RUN_START = 'run_start'
    STRATEGY_START = 'strategy_start'
    BATCH_COMPLETE = 'batch_complete'
    RECORD_PROCESSED = 'record_processed'
    STRATEGY_COMPLETE = 'strategy_complete'
    RUN_COMPLETE = 'run_complete'
    CONFIG_UPDATED = 'config_updated'


@dataclass
class Event:
    kind: EventKind
    payload: dict = field(default_factory=dict)


# Stops the dispatcher thread
_STOP = object()


class EventBus:
    """Fan-out of scheduler events to registered listeners"""

    def __init__(self, logger=None):
        self.logger = logger
        self._listeners = {}
        self._lock = threading.Lock()
        self._queue = queue.Queue()
        self._thread = None

    def log(self, message):
        if self.logger:
            self.logger(message)

    def on(self, kind, callback):
        """
        Subscribe to an event kind, or to every kind with kind='*'.

        The callback receives one Event.
        """
        key = kind if kind == '*' else EventKind(kind)
        with self._lock:
            self._listeners.setdefault(key, []).append(callback)
        return callback

    def off(self, kind, callback):
        key = kind if kind == '*' else EventKind(kind)
        with self._lock:
            callbacks = self._listeners.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def clear(self):
        with self._lock:
            self._listeners.clear()

    def emit(self, kind, **payload):
        """Queue an event for delivery; never blocks"""
        self._ensure_started()
        self._queue.put_nowait(Event(EventKind(kind), payload))

    def _ensure_started(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._dispatch, name='vault-events', daemon=True
                )
                self._thread.start()

    def _dispatch(self):
        while True:
            event = self._queue.get()
            try:
                if event is _STOP:
                    return
                self._deliver(event)
            finally:
                self._queue.task_done()

    def _deliver(self, event):
        with self._lock:
            callbacks = list(self._listeners.get(event.kind, []))
            callbacks += self._listeners.get('*', [])
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                self.log(f"Event listener failed on {event.kind.value}: {e}")

    def flush(self, timeout=5.0):
        """
        Wait until every queued event has been delivered.

        Returns:
            bool: False if the timeout expired first
        """
        if self._thread is None:
            return True
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def stop(self):
        """Deliver what is queued and stop the dispatcher thread"""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            self._queue.put_nowait(_STOP)
            thread.join(timeout=5.0)

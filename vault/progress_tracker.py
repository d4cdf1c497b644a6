"""
Progress tracker for maintenance runs.

Provides thread-safe progress storage that is fed by scheduler events and
can be read by a live progress view.
"""

import threading
from datetime import datetime

# Thread-safe progress storage
# Format: {strategy: {'status': str, 'processed': int, 'total': int, 'updated_at': datetime}}
_progress_store = {}
_lock = threading.Lock()


def update_progress(strategy, status, processed=None, total=None):
    """
    Update progress for a strategy.

    Args:
        strategy: Strategy name
        status: Current status (RUNNING, COMPLETE)
        processed: Optional number of records handled so far
        total: Optional number of records selected
    """
    with _lock:
        previous = _progress_store.get(strategy, {})
        _progress_store[strategy] = {
            'status': status,
            'processed': processed if processed is not None else previous.get('processed'),
            'total': total if total is not None else previous.get('total'),
            'updated_at': datetime.now(),
        }


def get_progress(strategy):
    """
    Get current progress for a strategy.

    Returns:
        dict with 'status', 'processed', 'total' and 'updated_at' or None if not found
    """
    with _lock:
        entry = _progress_store.get(strategy)
        return dict(entry) if entry else None


def get_all_progress():
    with _lock:
        return {name: dict(entry) for name, entry in _progress_store.items()}


def clear_progress(strategy=None):
    """
    Clear progress for one strategy, or for all of them.
    """
    with _lock:
        if strategy is None:
            _progress_store.clear()
        else:
            _progress_store.pop(strategy, None)


def _on_event(event):
    kind = event.kind.value
    payload = event.payload
    if kind == 'run_start':
        clear_progress()
    elif kind == 'strategy_start':
        update_progress(payload['strategy'], 'RUNNING', processed=0)
    elif kind == 'batch_complete':
        update_progress(
            payload['strategy'], 'RUNNING',
            processed=payload['processed'], total=payload['total'],
        )
    elif kind == 'strategy_complete':
        result = payload.get('result') or {}
        update_progress(payload['strategy'], 'COMPLETE', processed=result.get('processed', 0))


def track_scheduler(scheduler):
    """Subscribe the tracker to a scheduler's events"""
    return scheduler.on('*', _on_event)

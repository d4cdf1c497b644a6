"""
Maintenance scheduler.

Runs the registered strategies in priority order, one run at a time, and
optionally on a repeating timer. Configuration and run history are kept in
an injected key/value store so they survive restarts.
"""
import copy
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from django.utils import timezone

from vault.service.events import EventBus
from vault.service.strategy import ProcessResult, StageContext


CONFIG_KEY = 'maintenance-config'
HISTORY_KEY = 'maintenance-history'
MAX_HISTORY = 100

DEFAULT_CONFIG = {
    'auto_run': False,
    'run_interval': 60 * 60,  # seconds
    'max_concurrent': 1,
    'strategies': {
        'download': {'enabled': True, 'priority': 1},
        'thumbnail': {'enabled': True, 'priority': 2},
        'preview': {'enabled': True, 'priority': 3},
        'hls': {'enabled': True, 'priority': 4},
        'cleanup': {'enabled': True, 'priority': 5},
    },
}


def write_log(log_path, message):
    """Append message to log file"""
    if log_path:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        with open(log_path, 'a') as f:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            f.write(f"[{timestamp}] {message}\n")


def merge_config(base, updates):
    """Shallow merge, except 'strategies' which is merged per strategy name"""
    merged = copy.deepcopy(base)
    for key, value in (updates or {}).items():
        if key == 'strategies' and isinstance(value, dict):
            strategies = merged.setdefault('strategies', {})
            for name, settings in value.items():
                strategies[name] = {**strategies.get(name, {}), **(settings or {})}
        else:
            merged[key] = value
    return merged


def empty_result():
    return {'processed': 0, 'success': 0, 'failed': 0, 'errors': []}


class MaintenanceScheduler:
    """
    Single-flight runner for maintenance strategies.

    Args:
        read_all_records: callable() -> list[MediaRecord]
        update_record: callable(record_id, updates) applying a partial update atomically
        checker: RecordChecker
        store: object with load(key, default) and save(key, value)
        context: StageContext handed to strategies (built from checker if omitted)
        config: overrides applied on top of the persisted config
        logger: Optional callable(str) for logging
        log_path: Optional log file
        sleep: callable(seconds) used between records
        close_worker: Optional callable() run on pool and timer threads when they
            finish, used to release per-thread resources such as database connections
    """

    def __init__(self, read_all_records, update_record, checker, store,
                 context=None, config=None, logger=None, log_path=None, sleep=time.sleep,
                 close_worker=None):
        self.read_all_records = read_all_records
        self.update_record = update_record
        self.checker = checker
        self.store = store
        self.logger = logger
        self.log_path = log_path
        self.sleep = sleep
        self.close_worker = close_worker

        if context is None:
            context = StageContext(
                checker=checker,
                data_dir=checker.data_dir,
                hls_dir=checker.hls_dir,
            )
        if context.update_record is None:
            context.update_record = update_record
        if context.logger is None:
            context.logger = self.log
        self.context = context

        self.strategies = {}
        self.events = EventBus(logger=self.log)

        self.is_running = False
        self.current_task = None
        self._run_lock = threading.Lock()

        self._timer = None
        self._timer_lock = threading.RLock()
        self.next_run_at = None
        self._destroyed = False

        self._overrides = config
        saved = self.store.load(CONFIG_KEY, {}) or {}
        self.config = merge_config(merge_config(DEFAULT_CONFIG, saved), config)
        self.history = list(self.store.load(HISTORY_KEY, []) or [])[:MAX_HISTORY]

    def log(self, message):
        message = f"[Maintenance] {message}"
        write_log(self.log_path, message)
        if self.logger:
            self.logger(message)

    # Registration

    def register(self, strategy):
        self.strategies[strategy.name] = strategy
        overrides = self.config.get('strategies', {}).get(strategy.name)
        if overrides:
            strategy.update_config(overrides)
        self.log(f"Registered strategy: {strategy.name} (priority {strategy.priority})")
        return self

    def unregister(self, name):
        self.strategies.pop(name, None)
        return self

    def on(self, kind, callback):
        return self.events.on(kind, callback)

    def _ordered(self):
        enabled = [s for s in self.strategies.values() if s.enabled]
        return sorted(enabled, key=lambda s: s.priority)

    # Config and history

    def _save_config(self):
        self.store.save(CONFIG_KEY, self.config)

    def update_config(self, updates):
        """
        Merge a partial config, persist it and apply it.

        Strategy overrides are applied to registered strategies and the
        auto-run timer is restarted so a new interval takes effect at once.
        """
        self.config = merge_config(self.config, updates)
        self._save_config()

        for name, settings in (updates or {}).get('strategies', {}).items():
            strategy = self.strategies.get(name)
            if strategy:
                strategy.update_config(settings or {})

        with self._timer_lock:
            self._cancel_timer()
            if self.config.get('auto_run'):
                self._schedule()

        self.events.emit('config_updated', config=copy.deepcopy(self.config))
        return self.config

    def reload_config(self):
        """
        Re-read the persisted config, picking up changes saved by another
        process, and start or stop the auto-run timer to match it.
        """
        saved = self.store.load(CONFIG_KEY, {}) or {}
        self.config = merge_config(merge_config(DEFAULT_CONFIG, saved), self._overrides)

        for name, settings in self.config.get('strategies', {}).items():
            strategy = self.strategies.get(name)
            if strategy:
                strategy.update_config(settings or {})

        with self._timer_lock:
            self._cancel_timer()
            if self.config.get('auto_run'):
                self._schedule()

        self.log(f"Config reloaded (auto-run: {'on' if self.config.get('auto_run') else 'off'})")
        self.events.emit('config_updated', config=copy.deepcopy(self.config))
        return self.config

    def _log_history(self, action, results, duration):
        entry = {
            'action': action,
            'timestamp': timezone.now().isoformat(),
            'duration': round(duration, 3),
            'results': results,
        }
        self.history.insert(0, entry)
        del self.history[MAX_HISTORY:]
        self.store.save(HISTORY_KEY, self.history)
        return entry

    def get_history(self, limit=20):
        return self.history[:limit]

    # Status

    def get_status(self):
        records = self.read_all_records()
        strategies = {}

        for name, strategy in self.strategies.items():
            try:
                pending = strategy.get_pending_records(records, self.checker)
                strategies[name] = {
                    'enabled': strategy.enabled,
                    'priority': strategy.priority,
                    'pending': len(pending),
                    'last_run': strategy.last_run,
                    'last_result': strategy.last_result,
                }
            except Exception as e:
                strategies[name] = {
                    'enabled': strategy.enabled,
                    'priority': strategy.priority,
                    'pending': 0,
                    'error': str(e),
                }

        return {
            'is_running': self.is_running,
            'current_task': self.current_task,
            'strategies': strategies,
            'next_run': self.next_run_at.isoformat() if self.next_run_at else None,
            'config': self.config,
            'history_count': len(self.history),
        }

    # Runs

    def run_all(self):
        """
        Run every enabled strategy in priority order.

        Returns:
            dict: strategy name -> result counts, or an 'Already running'
                  error when another run holds the scheduler
        """
        if not self._run_lock.acquire(blocking=False):
            return {'error': 'Already running', 'is_running': True}

        try:
            self.is_running = True
            started_at = timezone.now()
            start = time.monotonic()
            self.events.emit('run_start', action='runAll')

            ordered = self._ordered()
            for strategy in ordered:
                strategy.begin_run(started_at)

            self.log(f"Running {len(ordered)} strategies")
            results = {}
            for strategy in ordered:
                results[strategy.name] = self._run_guarded(strategy)

            duration = time.monotonic() - start
            self._log_history('runAll', results, duration)
            self.log(f"All strategies finished in {duration:.1f}s")
            self.events.emit('run_complete', action='runAll', results=results)
            return results
        finally:
            self._finish_run()
            self._run_lock.release()

    def run_one(self, name):
        """Run a single strategy by name, whether or not it is enabled"""
        strategy = self.strategies.get(name)
        if strategy is None:
            return {'error': f"Strategy not found: {name}"}

        if not self._run_lock.acquire(blocking=False):
            return {'error': 'Already running', 'is_running': True}

        try:
            self.is_running = True
            start = time.monotonic()
            self.events.emit('run_start', action=name)
            strategy.begin_run(timezone.now())

            result = self._run_guarded(strategy)

            duration = time.monotonic() - start
            self._log_history(name, {name: result}, duration)
            self.events.emit('run_complete', action=name, results={name: result})
            return result
        finally:
            self._finish_run()
            self._run_lock.release()

    def _finish_run(self):
        self.is_running = False
        self.current_task = None

    def _run_guarded(self, strategy):
        """Run one strategy; its exceptions are recorded, never raised"""
        self.current_task = strategy.name
        self.events.emit('strategy_start', strategy=strategy.name)

        try:
            result = self.run_strategy(strategy)
        except Exception as e:
            self.log(f"Strategy {strategy.name} failed: {e}")
            result = empty_result()
            result['error'] = str(e)

        self.events.emit('strategy_complete', strategy=strategy.name, result=result)
        return result

    def run_strategy(self, strategy):
        records = self.read_all_records()
        pending = strategy.get_pending_records(records, self.checker)
        result = empty_result()

        if not pending:
            self.log(f"{strategy.name}: nothing to do")
            self._record_last_run(strategy, result)
            return result

        total = len(pending)
        self.log(f"{strategy.name}: processing {total} records")
        strategy.before_process(pending, self.context)

        max_concurrent = max(1, int(self.config.get('max_concurrent') or 1))
        batch_size = max(1, int(strategy.batch_size or 1))

        for start in range(0, total, batch_size):
            batch = pending[start:start + batch_size]

            if max_concurrent > 1 and len(batch) > 1:
                workers = min(max_concurrent, len(batch))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    outcomes = list(pool.map(
                        lambda record: self._process_in_worker(strategy, record), batch
                    ))
                for record, outcome in zip(batch, outcomes):
                    self._tally(result, record, outcome)
                if strategy.interval > 0 and start + batch_size < total:
                    self.sleep(strategy.interval)
            else:
                for index, record in enumerate(batch):
                    self._tally(result, record, self._process_with_retries(strategy, record))
                    if strategy.interval > 0 and start + index + 1 < total:
                        self.sleep(strategy.interval)

            self.events.emit(
                'batch_complete',
                strategy=strategy.name,
                processed=result['processed'],
                total=total,
            )

        strategy.after_process(result, self.context)
        self._record_last_run(strategy, result)
        self.log(
            f"{strategy.name}: done (success: {result['success']}, failed: {result['failed']})"
        )
        return result

    def _process_in_worker(self, strategy, record):
        try:
            return self._process_with_retries(strategy, record)
        finally:
            if self.close_worker:
                self.close_worker()

    def _process_with_retries(self, strategy, record):
        """
        Try a record up to retry_count times within this run.

        Updates from every attempt are written, failed ones included, so
        retry counters and error fields persist.

        Returns:
            (attempts, ProcessResult)
        """
        attempts = 0
        outcome = ProcessResult(success=False, error='Not attempted')
        current = record

        while attempts < max(1, strategy.retry_count):
            attempts += 1
            try:
                outcome = strategy.process_record(current, self.context)
                if outcome.updates:
                    self.update_record(current.id, outcome.updates)
                    current = current.apply(outcome.updates)
            except Exception as e:
                outcome = ProcessResult(success=False, error=str(e))

            if outcome.success:
                break

        self.events.emit(
            'record_processed',
            strategy=strategy.name,
            record_id=record.id,
            attempts=attempts,
            result=outcome.to_dict(),
        )
        return attempts, outcome

    def _tally(self, result, record, outcome):
        attempts, process_result = outcome
        result['processed'] += 1
        if process_result.success:
            result['success'] += 1
        else:
            result['failed'] += 1
            result['errors'].append({
                'id': record.id,
                'error': process_result.error or 'Unknown error',
                'attempts': attempts,
            })

    def _record_last_run(self, strategy, result):
        strategy.last_run = timezone.now().isoformat()
        strategy.last_result = {
            'processed': result['processed'],
            'success': result['success'],
            'failed': result['failed'],
        }

    # Unattended mode

    def start_auto_run(self):
        """Persist auto_run and schedule the next run; no-op if already scheduled"""
        with self._timer_lock:
            if self._timer is not None:
                return
            self.config['auto_run'] = True
            self._save_config()
            self._schedule()
        self.log(f"Auto-run enabled, every {self.config['run_interval']}s")

    def stop_auto_run(self):
        """Cancel the pending timer; a run already in progress is not interrupted"""
        with self._timer_lock:
            self._cancel_timer()
            self.config['auto_run'] = False
            self._save_config()
        self.log('Auto-run disabled')

    def _schedule(self):
        if self._destroyed:
            return
        interval = float(self.config.get('run_interval') or DEFAULT_CONFIG['run_interval'])
        self._timer = threading.Timer(interval, self._on_timer)
        self._timer.daemon = True
        self.next_run_at = timezone.now() + timedelta(seconds=interval)
        self._timer.start()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self.next_run_at = None

    def _on_timer(self):
        with self._timer_lock:
            self._timer = None
            self.next_run_at = None

        try:
            self.run_all()
        except Exception as e:
            self.log(f"Scheduled run failed: {e}")
        finally:
            if self.close_worker:
                self.close_worker()

        with self._timer_lock:
            if self.config.get('auto_run') and self._timer is None:
                self._schedule()

    def destroy(self):
        """Cancel timers and release listeners and strategies"""
        with self._timer_lock:
            self._destroyed = True
            self._cancel_timer()
        self.events.stop()
        self.events.clear()
        self.strategies.clear()

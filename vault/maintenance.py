"""
Process-wide wiring of the maintenance scheduler.

build_scheduler() assembles a scheduler from the Django catalog, the
database state store and the configured download mechanisms.
get_scheduler() keeps one instance per process for tasks and commands.
"""
import threading

from vault import catalog
from vault.progress_tracker import track_scheduler
from vault.service.browser import BrowserFallback
from vault.service.checker import RecordChecker
from vault.service.config import (
    get_data_dir,
    get_hls_dir,
    get_maintenance_log_path,
    is_autorun_enabled,
    is_browser_fallback_enabled,
)
from vault.service.download import download_file
from vault.service.scheduler import MaintenanceScheduler
from vault.service.stages import default_strategies
from vault.service.strategy import StageContext
from vault.service.workr import get_workr_client
from vault.state import DatabaseStateStore


_scheduler = None
_scheduler_lock = threading.Lock()


def build_scheduler(logger=None, config=None, strategies=None):
    """
    Build a scheduler backed by the database.

    Args:
        logger: Optional callable(str) for logging
        config: Overrides applied on top of the persisted config
        strategies: Strategies to register (default: all five stages)

    Returns:
        MaintenanceScheduler
    """
    checker = RecordChecker(get_data_dir(), get_hls_dir())

    context = StageContext(
        checker=checker,
        data_dir=get_data_dir(),
        hls_dir=get_hls_dir(),
        update_record=catalog.update_record,
        download_file=download_file,
        workr=get_workr_client(),
        browser=BrowserFallback(logger=logger) if is_browser_fallback_enabled() else None,
    )

    scheduler = MaintenanceScheduler(
        read_all_records=catalog.read_all_records,
        update_record=catalog.update_record,
        checker=checker,
        store=DatabaseStateStore(),
        context=context,
        config=config,
        logger=logger,
        log_path=str(get_maintenance_log_path()),
        close_worker=catalog.close_connection,
    )

    for strategy in strategies if strategies is not None else default_strategies():
        scheduler.register(strategy)

    return scheduler


def get_scheduler():
    """Shared scheduler for this process, built on first use"""
    global _scheduler
    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = build_scheduler()
            track_scheduler(_scheduler)
            if is_autorun_enabled() or _scheduler.config.get('auto_run'):
                _scheduler.start_auto_run()
        return _scheduler


def reset_scheduler():
    """Destroy the shared scheduler; the next get_scheduler() builds a new one"""
    global _scheduler
    with _scheduler_lock:
        if _scheduler is not None:
            _scheduler.destroy()
        _scheduler = None

from huey.contrib.djhuey import db_task, on_shutdown, on_startup

from vault import catalog
from vault.maintenance import get_scheduler, reset_scheduler
from vault.service.checker import RecordChecker
from vault.service.config import get_data_dir, get_hls_dir, get_maintenance_log_path
from vault.service.reconcile import sync_all_statuses
from vault.service.scheduler import write_log


@on_startup()
def start_maintenance_scheduler():
    """
    Build the shared scheduler when the consumer starts, so a persisted
    auto_run resumes without waiting for the first task.
    """
    get_scheduler()


@on_shutdown()
def stop_maintenance_scheduler():
    reset_scheduler()


@db_task()
def run_maintenance(strategy_name=None):
    """
    Background maintenance run.

    Runs every enabled strategy, or only strategy_name when given. Returns
    the scheduler's result, which is an 'Already running' error when another
    run is in progress.
    """
    scheduler = get_scheduler()
    if strategy_name:
        return scheduler.run_one(strategy_name)
    return scheduler.run_all()


@db_task()
def sync_statuses(dry_run=False, force=False):
    """Background status reconciliation over the whole catalog"""
    log_path = str(get_maintenance_log_path())

    def log(message):
        write_log(log_path, f"[Sync] {message}")

    log("=== SYNC STARTED ===")
    checker = RecordChecker(get_data_dir(), get_hls_dir())
    stats = sync_all_statuses(
        catalog.read_all_records(),
        catalog.update_record,
        checker,
        dry_run=dry_run,
        force=force,
        logger=log,
    )
    log("=== SYNC FINISHED ===")
    return stats


@db_task()
def reload_maintenance_config():
    """Apply config saved by another process, such as the maintenance command"""
    return get_scheduler().reload_config()

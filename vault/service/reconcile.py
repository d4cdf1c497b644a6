"""
Status reconciliation.

Recomputes every record's status columns from the disk and writes back only
the fields that drifted. Each write goes through the per-record
update_record accessor, so reconciling one record never holds up another.
"""


def sync_all_statuses(records, update_record, checker, dry_run=False, force=False, logger=None):
    """
    Bring stored statuses in line with the files on disk.

    Args:
        records: iterable of MediaRecord
        update_record: callable(record_id, updates)
        checker: RecordChecker
        dry_run: Compute the updates without writing them
        force: Rewrite every status field, even unchanged ones
        logger: Optional callable(str) for logging

    Returns:
        dict: total, synced and unchanged counts, plus per-record errors
              and (in dry-run mode) the updates that would be written
    """
    def log(message):
        if logger:
            logger(message)

    stats = {
        'total': 0,
        'synced': 0,
        'unchanged': 0,
        'errors': [],
    }
    if dry_run:
        stats['changes'] = {}

    for record in records:
        stats['total'] += 1
        try:
            updates = checker.sync_record_status(record, force=force)
            if not updates:
                stats['unchanged'] += 1
                continue

            if dry_run:
                stats['changes'][record.id] = updates
            else:
                update_record(record.id, updates)
            stats['synced'] += 1
            log(f"{record.id}: {', '.join(f'{k}={v}' for k, v in updates.items())}")
        except Exception as e:
            stats['errors'].append({'id': record.id, 'error': str(e)})
            log(f"{record.id}: sync failed: {e}")

    log(
        f"Synced {stats['synced']} of {stats['total']} records "
        f"({stats['unchanged']} unchanged, {len(stats['errors'])} errors)"
    )
    return stats

"""
Maintenance pipeline for captured media.

Everything here works on MediaRecord snapshots and injected accessors,
independent of the Django models. These modules are used by:
- The huey background tasks (vault/tasks.py)
- The management commands (manage.py maintenance / sync_status)
"""

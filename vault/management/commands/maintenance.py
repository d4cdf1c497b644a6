"""
Management command to drive the maintenance scheduler.

Runs in the foreground with a scheduler built for this command; the worker
process keeps its own instance and is told to reload after config changes.
"""
import json

from django.core.management.base import BaseCommand, CommandError

from vault.maintenance import build_scheduler
from vault.tasks import reload_maintenance_config


class Command(BaseCommand):
    help = 'Show, run and configure media maintenance'

    def add_arguments(self, parser):
        parser.add_argument(
            'action',
            choices=['status', 'run', 'history', 'autorun', 'config'],
            help='What to do',
        )
        parser.add_argument(
            'value',
            nargs='?',
            help="Strategy name for 'run', 'on'/'off' for 'autorun'",
        )
        parser.add_argument('--limit', type=int, default=20, help='History entries to show')
        parser.add_argument('--interval', type=int, help='Auto-run interval in seconds')
        parser.add_argument('--max-concurrent', type=int, help='Records processed in parallel')
        parser.add_argument('--enable', action='append', default=[], help='Enable a strategy')
        parser.add_argument('--disable', action='append', default=[], help='Disable a strategy')
        parser.add_argument(
            '--priority',
            action='append',
            default=[],
            help='Set a strategy priority as NAME=N',
        )
        parser.add_argument('--verbose', action='store_true', help='Verbose output')
        parser.add_argument('--json', action='store_true', help='JSON output')

    def handle(self, *args, **options):
        action = options['action']
        self.json_output = options['json']

        logger = self.stdout.write if options['verbose'] and not self.json_output else None
        scheduler = build_scheduler(logger=logger)
        try:
            handler = getattr(self, f'handle_{action}')
            handler(scheduler, options)
        finally:
            scheduler.events.flush()
            scheduler.destroy()

    def emit(self, data):
        self.stdout.write(json.dumps(data, indent=2, default=str))

    def handle_status(self, scheduler, options):
        status = scheduler.get_status()
        if self.json_output:
            self.emit(status)
            return

        state = 'running' if status['is_running'] else 'idle'
        self.stdout.write(f"Scheduler: {state}")
        self.stdout.write(f"Auto-run: {'on' if status['config'].get('auto_run') else 'off'}")
        self.stdout.write(f"History entries: {status['history_count']}")
        self.stdout.write('')
        ordered = sorted(status['strategies'].items(), key=lambda kv: kv[1]['priority'])
        for name, info in ordered:
            flag = '' if info['enabled'] else ' (disabled)'
            line = f"  [{info['priority']}] {name}{flag}: {info['pending']} pending"
            if info.get('error'):
                line += f" - error: {info['error']}"
            self.stdout.write(line)

    def handle_run(self, scheduler, options):
        name = options['value']
        if name:
            result = scheduler.run_one(name)
            if 'error' in result and 'processed' not in result:
                raise CommandError(result['error'])
            results = {name: result}
        else:
            results = scheduler.run_all()
            if 'error' in results:
                raise CommandError(results['error'])

        if self.json_output:
            self.emit(results)
            return

        for strategy, result in results.items():
            line = (
                f"{strategy}: {result['processed']} processed, "
                f"{result['success']} ok, {result['failed']} failed"
            )
            if result.get('error'):
                self.stdout.write(self.style.ERROR(f"{line} ({result['error']})"))
            elif result['failed']:
                self.stdout.write(self.style.WARNING(line))
                for error in result['errors']:
                    self.stdout.write(f"  {error['id']}: {error['error']} ({error['attempts']} attempts)")
            else:
                self.stdout.write(self.style.SUCCESS(line))

    def handle_history(self, scheduler, options):
        history = scheduler.get_history(options['limit'])
        if self.json_output:
            self.emit(history)
            return
        if not history:
            self.stdout.write('No runs recorded')
            return
        for entry in history:
            succeeded = sum(r.get('success', 0) for r in entry['results'].values())
            failed = sum(r.get('failed', 0) for r in entry['results'].values())
            self.stdout.write(
                f"{entry['timestamp']}  {entry['action']:<10} "
                f"{entry['duration']:.1f}s  ok={succeeded} failed={failed}"
            )

    def handle_autorun(self, scheduler, options):
        value = (options['value'] or '').lower()
        if value not in ('on', 'off'):
            raise CommandError("autorun expects 'on' or 'off'")
        config = scheduler.update_config({'auto_run': value == 'on'})
        reload_maintenance_config()
        if self.json_output:
            self.emit(config)
        else:
            self.stdout.write(self.style.SUCCESS(f"Auto-run {value}"))

    def handle_config(self, scheduler, options):
        updates = {}
        if options['interval'] is not None:
            if options['interval'] <= 0:
                raise CommandError('--interval must be positive')
            updates['run_interval'] = options['interval']
        if options['max_concurrent'] is not None:
            if options['max_concurrent'] < 1:
                raise CommandError('--max-concurrent must be at least 1')
            updates['max_concurrent'] = options['max_concurrent']

        strategies = {}
        for name in options['enable']:
            strategies.setdefault(self._strategy(scheduler, name), {})['enabled'] = True
        for name in options['disable']:
            strategies.setdefault(self._strategy(scheduler, name), {})['enabled'] = False
        for entry in options['priority']:
            name, _, value = entry.partition('=')
            try:
                priority = int(value)
            except ValueError:
                raise CommandError(f"Invalid priority: {entry}")
            strategies.setdefault(self._strategy(scheduler, name), {})['priority'] = priority
        if strategies:
            updates['strategies'] = strategies

        if updates:
            config = scheduler.update_config(updates)
            reload_maintenance_config()
        else:
            config = scheduler.config
        if self.json_output:
            self.emit(config)
            return
        self.stdout.write(json.dumps(config, indent=2))
        if updates:
            self.stdout.write(self.style.SUCCESS('Configuration saved'))

    def _strategy(self, scheduler, name):
        if name not in scheduler.strategies:
            raise CommandError(f"Strategy not found: {name}")
        return name

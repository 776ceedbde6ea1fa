import json

from django.core.management.base import BaseCommand, CommandError

from linkgraph.balance import auto_repair_link_balance, generate_platform_report
from linkgraph.errors import LinkGraphError


class Command(BaseCommand):
    help = 'Print the link balance report of a platform and optionally repair orphans and dead-ends.'

    def add_arguments(self, parser):
        parser.add_argument('platform', type=int)
        parser.add_argument('--language', help='Restrict the analysis to one language code.')
        parser.add_argument('--auto-repair', action='store_true', help='Plan links for orphans and dead-ends.')
        parser.add_argument('--dry-run', action='store_true', help='With --auto-repair, report the plan only.')
        parser.add_argument('--limit', type=int, help='Maximum orphans and dead-ends to repair.')

    def handle(self, *args, **options):
        try:
            report = generate_platform_report(options['platform'], options['language'])
            self.stdout.write(json.dumps(report, indent=2, default=str))
            if not options['auto_repair']:
                return
            result = auto_repair_link_balance(
                options['platform'],
                language=options['language'],
                dry_run=options['dry_run'],
                limit=options['limit'],
            )
        except LinkGraphError as exc:
            raise CommandError(str(exc)) from exc

        verb = 'Planned' if result['dry_run'] else 'Committed'
        count = len(result['plan']) if result['dry_run'] else len(result['committed_changes'])
        self.stdout.write(self.style.SUCCESS(
            f"{verb} {count} edges for {result['orphans']} orphans and {result['dead_ends']} dead-ends"
        ))
        if result['unresolved']:
            self.stdout.write(self.style.WARNING(f"Unresolved nodes: {result['unresolved']}"))

from django.core.management.base import BaseCommand

from linkgraph.verification import verify_external_edges


class Command(BaseCommand):
    help = 'Check that external links still resolve and deactivate failing domains.'

    def add_arguments(self, parser):
        parser.add_argument('--platform', type=int)
        parser.add_argument('--limit', type=int, default=200)
        parser.add_argument('--stale-days', type=int, default=7, help='Re-check links verified before this many days.')

    def handle(self, *args, **options):
        result = verify_external_edges(
            platform_id=options['platform'],
            limit=options['limit'],
            stale_days=options['stale_days'],
        )
        self.stdout.write(self.style.SUCCESS(
            f"Checked {result['checked_urls']} urls: {result['active']} active, {result['broken']} broken"
        ))
        for domain in result['deactivated_domains']:
            self.stdout.write(self.style.WARNING(f'Deactivated {domain}'))

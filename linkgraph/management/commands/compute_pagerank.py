from django.core.management.base import BaseCommand, CommandError

from linkgraph.errors import LinkGraphError
from linkgraph.models import Platform
from linkgraph.ranking import calculate_for_platform


class Command(BaseCommand):
    help = 'Recompute PageRank for one platform, or every platform.'

    def add_arguments(self, parser):
        parser.add_argument('--platform', type=int, help='Platform id; all platforms when omitted.')

    def handle(self, *args, **options):
        if options['platform'] is not None:
            platform_ids = [options['platform']]
        else:
            platform_ids = list(Platform.objects.order_by('pk').values_list('pk', flat=True))

        for platform_id in platform_ids:
            try:
                result = calculate_for_platform(platform_id)
            except LinkGraphError as exc:
                raise CommandError(str(exc)) from exc
            style = self.style.SUCCESS if result['converged'] else self.style.WARNING
            self.stdout.write(style(
                f"Platform {platform_id}: {result['scores_written']} scores, "
                f"{result['iterations']} iterations, converged={result['converged']}"
            ))

from django.core.management.base import BaseCommand, CommandError

from linkgraph.errors import LinkGraphError
from linkgraph.orchestrator import ProcessOptions, dispatch_platform_batch, process_batch, unprocessed_node_ids


class Command(BaseCommand):
    help = 'Run link processing for the unprocessed articles of a platform.'

    def add_arguments(self, parser):
        parser.add_argument('platform', type=int)
        parser.add_argument('--limit', type=int, help='Maximum number of articles to process.')
        parser.add_argument('--node', type=int, action='append', dest='nodes', help='Process only this node id.')
        parser.add_argument('--force', action='store_true', help='Redo articles that were already processed.')
        parser.add_argument('--internal-only', action='store_true', help='Skip external, affiliate and pillar passes.')
        parser.add_argument('--dispatch', action='store_true', help='Queue the platform in waves instead.')

    def handle(self, *args, **options):
        internal_only = options['internal_only']
        process_options = ProcessOptions(
            external=not internal_only,
            affiliate=not internal_only,
            pillar=not internal_only,
            force=options['force'],
        )
        try:
            if options['dispatch']:
                result = dispatch_platform_batch(options['platform'], process_options)
                self.stdout.write(self.style.SUCCESS(
                    f"Dispatched {result['nodes']} articles in {result['waves']} waves"
                ))
                return
            node_ids = options['nodes'] or unprocessed_node_ids(options['platform'], options['limit'])
            summary = process_batch(node_ids, process_options)
        except LinkGraphError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(
            f"Processed {len(summary['processed'])}, skipped {len(summary['skipped'])}, "
            f"failed {len(summary['failed'])}"
        ))
        for node_id, error in summary['failed'].items():
            self.stderr.write(f'  {node_id}: {error}')

from __future__ import annotations

import io

from django.core.management import call_command
from django.test import TestCase

from linkgraph.balance import (
    auto_repair_link_balance,
    generate_platform_report,
    gini,
    identify_dead_ends,
    identify_orphan_articles,
    identify_weakly_connected,
    pillars_without_children,
    suggest_link_improvements,
    suggest_platform_improvements,
)
from linkgraph.errors import NotFoundError
from linkgraph.models import ExternalEdge, InternalEdge, LinkingRule

from .factories import make_node, make_platform


class LinkBalanceTests(TestCase):
    def setUp(self) -> None:
        self.platform = make_platform()
        LinkingRule.objects.create(
            platform=self.platform,
            min_internal_links=1,
            min_relevance_score=0,
            require_pillar_link=False,
        )
        self.hub = make_node(self.platform, 'Opening a bank account')
        self.linked = make_node(self.platform, 'Choosing a bank')
        self.isolated = make_node(self.platform, 'Bank fees')
        self.pillar = make_node(self.platform, 'Banking in France', node_type='pillar')
        self.manual = InternalEdge.objects.create(
            source=self.hub, target=self.linked, anchor_text='choosing a bank',
            anchor_category='exact_match', origin='manual',
        )
        InternalEdge.objects.create(
            source=self.linked, target=self.hub, anchor_text='opening a bank account', anchor_category='exact_match',
        )

    def test_isolated_nodes_are_orphans_and_dead_ends(self) -> None:
        orphans = identify_orphan_articles(self.platform.pk)
        dead_ends = identify_dead_ends(self.platform.pk)

        orphan_ids = [row['node_id'] for row in orphans['results']]
        self.assertEqual(orphan_ids, [self.isolated.pk, self.pillar.pk])
        self.assertEqual([row['node_id'] for row in dead_ends['results']], orphan_ids)
        self.assertEqual([row['severity'] for row in orphans['results']], ['warning', 'critical'])
        self.assertEqual(orphans['total'], 2)

    def test_listings_page_and_filter(self) -> None:
        page = identify_orphan_articles(self.platform.pk, limit=1, offset=1)

        self.assertEqual(page['total'], 2)
        self.assertEqual([row['node_id'] for row in page['results']], [self.pillar.pk])
        self.assertEqual(identify_orphan_articles(self.platform.pk, language='de')['total'], 0)

    def test_inactive_edges_do_not_count(self) -> None:
        InternalEdge.objects.filter(source=self.linked).update(is_active=False)

        dead_end_ids = [row['node_id'] for row in identify_dead_ends(self.platform.pk)['results']]
        self.assertIn(self.linked.pk, dead_end_ids)

    def test_platform_report(self) -> None:
        ExternalEdge.objects.create(
            source=self.hub, url='https://service-public.fr', anchor_text='Service Public',
            authority_score=85, source_type='government',
        )

        report = generate_platform_report(self.platform.pk)

        self.assertEqual(report['nodes'], 4)
        self.assertEqual(report['orphans'], 2)
        self.assertEqual(report['dead_ends'], 2)
        self.assertEqual(report['average_inbound'], 0.5)
        self.assertEqual(report['inbound_gini'], 0.5)
        self.assertEqual(report['anchor_distribution']['exact_match']['count'], 2)
        self.assertEqual(report['authority_histogram']['80-100'], 1)
        self.assertEqual(report['external_links'], 1)
        self.assertIsNone(report['pagerank'])
        self.assertEqual(report['weakly_connected'], 4)
        self.assertEqual(report['pillars_without_children'], [self.pillar.pk])
        self.assertEqual(report['link_flow'], [])
        self.assertEqual(
            [item['code'] for item in report['recommendations']],
            ['orphan_articles', 'empty_pillars', 'dead_end_articles', 'uneven_distribution', 'weakly_connected'],
        )
        self.assertEqual(report['recommendations'][0]['severity'], 'high')

    def test_weakly_connected_nodes(self) -> None:
        weak = identify_weakly_connected(self.platform.pk)
        wider = identify_weakly_connected(self.platform.pk, min_links=3, limit=3)

        self.assertEqual([row['node_id'] for row in weak['results']], [self.isolated.pk, self.pillar.pk])
        self.assertEqual(wider['total'], 4)
        self.assertEqual([row['node_id'] for row in wider['results']], [self.isolated.pk, self.pillar.pk, self.hub.pk])
        self.assertEqual((wider['results'][2]['inbound'], wider['results'][2]['outbound']), (1, 1))

    def test_pillars_linking_a_child_are_not_empty(self) -> None:
        self.assertEqual(list(pillars_without_children(self.platform.pk)), [self.pillar])
        child = make_node(self.platform, 'Bank cards', pillar=self.pillar)
        InternalEdge.objects.create(source=self.pillar, target=child, anchor_text='bank cards', anchor_category='exact_match')

        self.assertFalse(pillars_without_children(self.platform.pk).exists())
        codes = [item['code'] for item in suggest_platform_improvements(self.platform.pk)['recommendations']]
        self.assertNotIn('empty_pillars', codes)

    def test_gini(self) -> None:
        self.assertEqual(gini([]), 0.0)
        self.assertEqual(gini([3, 3, 3]), 0.0)
        self.assertEqual(gini([0, 0, 0, 4]), 0.75)

    def test_dry_run_matches_committed_repair(self) -> None:
        dry = auto_repair_link_balance(self.platform.pk, dry_run=True)

        self.assertEqual(InternalEdge.objects.count(), 2)
        self.assertTrue(dry['plan'])
        self.assertEqual(dry['committed_changes'], [])

        committed = auto_repair_link_balance(self.platform.pk, dry_run=False)

        self.assertEqual(committed['plan'], dry['plan'])
        self.assertEqual(len(committed['committed_changes']), len(dry['plan']))
        self.assertTrue(InternalEdge.objects.filter(pk=self.manual.pk, origin='manual').exists())
        self.assertEqual(identify_orphan_articles(self.platform.pk)['total'], 0)
        self.assertEqual(identify_dead_ends(self.platform.pk)['total'], 0)

    def test_suggestions_are_not_persisted(self) -> None:
        suggestions = suggest_link_improvements(self.isolated.pk)

        self.assertTrue(suggestions['internal'])
        self.assertIn('internal_below_min', [item['code'] for item in suggestions['violations']])
        self.assertFalse(InternalEdge.objects.filter(source=self.isolated).exists())

    def test_unknown_platform(self) -> None:
        with self.assertRaises(NotFoundError):
            generate_platform_report(999999)

    def test_management_command_dry_run(self) -> None:
        out = io.StringIO()

        call_command('analyze_link_balance', str(self.platform.pk), '--auto-repair', '--dry-run', stdout=out)

        self.assertIn('Planned', out.getvalue())
        self.assertEqual(InternalEdge.objects.count(), 2)

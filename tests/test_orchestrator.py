from __future__ import annotations

from collections import Counter
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone

from linkgraph import orchestrator
from linkgraph.engine.types import AnchorCategory, EdgeProposal
from linkgraph.errors import NotFoundError, ValidationError
from linkgraph.models import AffiliateOffer, AuthorityDomain, ContentNode, ExternalEdge, InternalEdge, LinkingRule
from linkgraph.orchestrator import (
    ProcessOptions,
    apply_plan,
    check_article_link_health,
    dispatch_platform_batch,
    process_article,
    process_batch,
)
from linkgraph.store import anchor_counts, designated_pillar_id

from .factories import make_node, make_platform


def warning_codes(result) -> list:
    return [warning.code for warning in result.warnings]


class ProcessArticleTests(TestCase):
    def setUp(self) -> None:
        self.platform = make_platform()
        self.pillar = make_node(self.platform, 'Visas in France', node_type='pillar')
        self.article = make_node(self.platform, 'Student visa', pillar=self.pillar)
        self.others = [
            make_node(self.platform, title, pillar=self.pillar)
            for title in ('Work visa', 'Family visa', 'Visa renewal')
        ]

    def test_internal_links_are_placed_and_node_marked_processed(self) -> None:
        result = process_article(self.article.pk)

        self.article.refresh_from_db()
        targets = set(InternalEdge.objects.filter(source=self.article).values_list('target_id', flat=True))
        self.assertEqual(result.added_internal, 3)
        self.assertEqual(result.added_pillar, 1)
        self.assertEqual(targets, {self.pillar.pk, *(node.pk for node in self.others)})
        self.assertNotIn(self.article.pk, targets)
        self.assertIsNotNone(self.article.links_processed_at)
        self.assertEqual(self.article.content.count('data-origin="automatic"'), 4)
        self.assertEqual(warning_codes(result), ['external_below_min', 'government_missing'])

    def test_edges_stay_out_of_exclusion_zones(self) -> None:
        process_article(self.article.pk)

        positions = list(InternalEdge.objects.filter(source=self.article).values_list('paragraph_index', flat=True))
        self.assertEqual(sorted(positions), [1, 2, 3, 4])

    def test_second_run_is_skipped(self) -> None:
        process_article(self.article.pk)
        result = process_article(self.article.pk)

        self.assertTrue(result.skipped)
        self.assertEqual(InternalEdge.objects.filter(source=self.article).count(), 4)

    def test_force_rerun_keeps_manual_edges(self) -> None:
        manual = InternalEdge.objects.create(
            source=self.article,
            target=self.others[0],
            anchor_text='work visa',
            anchor_category=AnchorCategory.EXACT_MATCH.value,
            origin='manual',
        )
        first = process_article(self.article.pk)
        second = process_article(self.article.pk, ProcessOptions(force=True))

        self.article.refresh_from_db()
        self.assertEqual((first.added_internal, first.added_pillar), (2, 1))
        self.assertEqual((second.added_internal, second.added_pillar), (2, 1))
        self.assertTrue(InternalEdge.objects.filter(pk=manual.pk).exists())
        self.assertEqual(InternalEdge.objects.filter(source=self.article).count(), 4)
        self.assertEqual(self.article.content.count('data-origin="automatic"'), 3)

    def test_shortfalls_are_reported_as_warnings(self) -> None:
        LinkingRule.objects.create(platform=self.platform, min_relevance_score=100)

        result = process_article(self.article.pk)

        self.assertEqual(result.added_internal, 0)
        self.assertEqual(result.added_pillar, 1)
        self.assertIn('internal_below_min', warning_codes(result))
        self.assertTrue(InternalEdge.objects.filter(source=self.article, target=self.pillar).exists())

    def test_pillar_links_to_its_children(self) -> None:
        result = process_article(
            self.pillar.pk,
            ProcessOptions(internal=False, external=False, affiliate=False),
        )

        targets = set(InternalEdge.objects.filter(source=self.pillar).values_list('target_id', flat=True))
        self.assertEqual(result.added_pillar, 4)
        self.assertEqual(targets, {self.article.pk, *(node.pk for node in self.others)})

    def test_missing_pillar_is_a_warning(self) -> None:
        platform = make_platform('No pillars')
        node = make_node(platform, 'Tax residency')
        make_node(platform, 'Tax returns')

        result = process_article(node.pk)

        self.assertIn('pillar_missing', warning_codes(result))
        self.assertEqual(result.added_internal, 1)

    def test_external_links_follow_source_priority(self) -> None:
        AuthorityDomain.objects.create(
            domain='lemonde.fr', name='Le Monde', source_type='news', country_code='fr', authority_score=80,
        )
        AuthorityDomain.objects.create(
            domain='service-public.fr', name='Service Public', source_type='government',
            country_code='fr', authority_score=90, themes=['visa'],
        )
        AuthorityDomain.objects.create(
            domain='broken.example', source_type='organization', authority_score=95, failure_count=1,
        )
        AuthorityDomain.objects.create(domain='blog.example', source_type='reference', authority_score=30)

        result = process_article(self.article.pk, ProcessOptions(internal=False, affiliate=False, pillar=False))

        edges = ExternalEdge.objects.filter(source=self.article).order_by('paragraph_index')
        self.assertEqual(result.added_external, 2)
        self.assertEqual(result.warnings, [])
        self.assertEqual([edge.url for edge in edges], ['https://service-public.fr', 'https://lemonde.fr'])
        self.assertEqual(edges[0].source_type, 'government')

    def test_affiliate_offers_match_country_and_themes(self) -> None:
        AffiliateOffer.objects.create(
            platform=self.platform, name='Visa insurance', url='https://partner.example/visa',
            countries=['FR'], themes=['visa'],
        )
        AffiliateOffer.objects.create(
            platform=self.platform, name='German bank', url='https://partner.example/bank', countries=['de'],
        )

        result = process_article(self.article.pk, ProcessOptions(internal=False, external=False, pillar=False))

        edge = ExternalEdge.objects.get(source=self.article)
        self.assertEqual(result.added_affiliate, 1)
        self.assertEqual(edge.kind, 'affiliate')
        self.assertEqual(edge.url, 'https://partner.example/visa')

    def test_self_link_proposals_are_rejected(self) -> None:
        proposal = EdgeProposal(
            source_id=self.article.pk,
            target_id=self.article.pk,
            anchor_text='student visa',
            anchor_category=AnchorCategory.EXACT_MATCH,
            paragraph_index=1,
            relevance_score=90.0,
        )

        with self.assertRaises(ValidationError):
            apply_plan(self.article, [proposal])
        self.assertFalse(InternalEdge.objects.exists())

    def test_unknown_node(self) -> None:
        with self.assertRaises(NotFoundError):
            process_article(999999)

    def test_unknown_options_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ProcessOptions.from_dict({'internal': True, 'bogus': False})
        with self.assertRaises(ValidationError):
            ProcessOptions.from_dict({'force': 'yes'})

    def test_health_check_reports_violations(self) -> None:
        process_article(self.article.pk)

        health = check_article_link_health(self.article.pk)

        self.assertFalse(health['compliant'])
        self.assertEqual(
            [item['code'] for item in health['violations']],
            ['external_below_min', 'government_missing'],
        )
        self.assertEqual(health['metrics']['internal_links'], 4)
        self.assertEqual(health['metrics']['inbound_links'], 0)
        self.assertTrue(health['metrics']['orphan'])
        self.assertTrue(health['metrics']['links_to_pillar'])
        self.assertTrue(health['metrics']['processed'])
        self.assertEqual((health['score'], health['grade']), (55, 'F'))

    def test_inbound_link_lifts_the_health_grade(self) -> None:
        process_article(self.article.pk)
        InternalEdge.objects.create(
            source=self.others[0], target=self.article, anchor_text='student visa',
            anchor_category=AnchorCategory.EXACT_MATCH.value, origin='manual',
        )

        health = check_article_link_health(self.article.pk)

        self.assertEqual(health['metrics']['inbound_links'], 1)
        self.assertFalse(health['metrics']['orphan'])
        self.assertEqual((health['score'], health['grade']), (85, 'B'))

    def test_pillar_slot_is_used_when_internal_links_are_capped(self) -> None:
        LinkingRule.objects.create(
            platform=self.platform,
            min_internal_links=3,
            max_internal_links=3,
            min_relevance_score=0,
            min_external_links=0,
            require_government=False,
            require_pillar_link=True,
        )

        result = process_article(self.article.pk)

        targets = set(InternalEdge.objects.filter(source=self.article).values_list('target_id', flat=True))
        self.assertEqual((result.added_internal, result.added_pillar), (2, 1))
        self.assertEqual(len(targets), 3)
        self.assertIn(self.pillar.pk, targets)
        self.assertEqual(result.warnings, [])

    def test_unpublished_explicit_pillar_is_not_linked(self) -> None:
        archived = make_node(self.platform, 'Old visa guide', node_type='pillar', status='archived')
        node = make_node(self.platform, 'Visa appeals', pillar=archived)

        self.assertEqual(designated_pillar_id(node), self.pillar.pk)
        process_article(node.pk)

        self.assertFalse(InternalEdge.objects.filter(source=node, target=archived).exists())
        self.assertTrue(InternalEdge.objects.filter(source=node, target=self.pillar).exists())


class BatchProcessingTests(TestCase):
    def setUp(self) -> None:
        self.platform = make_platform()
        LinkingRule.objects.create(
            platform=self.platform,
            min_internal_links=3,
            max_internal_links=3,
            min_relevance_score=0,
            min_external_links=0,
            require_government=False,
            require_pillar_link=False,
            anchor_distribution={'exact_match': 40, 'long_tail': 30, 'generic': 20, 'cta': 5, 'question': 5},
        )
        self.nodes = [
            make_node(self.platform, title)
            for title in ('Opening a bank account', 'Health insurance', 'Renting a flat', 'Driving licence', 'Tax returns')
        ]

    def test_batch_converges_to_anchor_distribution(self) -> None:
        summary = process_batch([node.pk for node in self.nodes] + [999999])

        self.assertEqual(summary['processed'], [node.pk for node in self.nodes])
        self.assertIn(999999, summary['failed'])
        self.assertEqual(InternalEdge.objects.filter(source__platform=self.platform).count(), 15)
        self.assertEqual(
            anchor_counts(self.platform.pk),
            {'exact_match': 6, 'long_tail': 4, 'generic': 3, 'cta': 1, 'question': 1},
        )
        for node in self.nodes:
            self.assertEqual(node.outbound_edges.count(), 3)

    @override_settings(LINKGRAPH_BATCH_WAVE_SIZE=2, LINKGRAPH_DISPATCHER='linkgraph.jobs.InlineDispatcher')
    def test_platform_dispatch_runs_in_waves(self) -> None:
        result = dispatch_platform_batch(self.platform.pk)

        self.assertEqual(result, {'platform_id': self.platform.pk, 'nodes': 5, 'waves': 3})
        self.assertFalse(ContentNode.objects.filter(platform=self.platform, links_processed_at__isnull=True).exists())

    def test_dispatch_skips_processed_nodes(self) -> None:
        process_article(self.nodes[0].pk)

        result = dispatch_platform_batch(self.platform.pk)

        self.assertEqual(result['nodes'], 4)

    def test_existing_edges_do_not_skew_batch_anchors(self) -> None:
        legacy = [
            make_node(self.platform, f'Legacy guide {index}', links_processed_at=timezone.now())
            for index in range(5)
        ]
        for index, source in enumerate(legacy):
            for step in (1, 2):
                target = legacy[(index + step) % len(legacy)]
                InternalEdge.objects.create(
                    source=source, target=target, anchor_text=target.title,
                    anchor_category=AnchorCategory.EXACT_MATCH.value,
                )

        process_batch([node.pk for node in self.nodes])

        categories = Counter(
            InternalEdge.objects.filter(source__in=self.nodes).values_list('anchor_category', flat=True)
        )
        self.assertEqual(sum(categories.values()), 15)
        self.assertEqual(
            dict(categories),
            {'exact_match': 6, 'long_tail': 4, 'generic': 3, 'cta': 1, 'question': 1},
        )

    def test_unexpected_error_fails_only_that_node(self) -> None:
        broken = self.nodes[1]
        real_apply_plan = orchestrator.apply_plan

        def apply_plan_failing_for_one(node, proposals):
            if node.pk == broken.pk:
                raise RuntimeError('renderer crashed')
            return real_apply_plan(node, proposals)

        with patch('linkgraph.orchestrator.apply_plan', side_effect=apply_plan_failing_for_one):
            with self.assertLogs('linkgraph.orchestrator', level='ERROR'):
                summary = process_batch([node.pk for node in self.nodes])

        broken.refresh_from_db()
        self.assertEqual(summary['processed'], [node.pk for node in self.nodes if node.pk != broken.pk])
        self.assertEqual(summary['failed'], {broken.pk: 'RuntimeError: renderer crashed'})
        self.assertFalse(InternalEdge.objects.filter(source=broken).exists())
        self.assertIsNone(broken.links_processed_at)

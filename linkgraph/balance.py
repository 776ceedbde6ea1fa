"""Platform-wide link balance diagnostics and repair.

Orphans are published nodes without active inbound internal edges and
dead-ends are published nodes without active outbound internal edges. The
repair plans one inbound edge per orphan and an improve-only internal pass
per dead-end, then either returns the plan (dry run) or applies it as is.

The platform report also lists weakly connected nodes and pillars that link
to none of their children, and turns its figures into severity-tagged
recommendations.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import F, QuerySet

from . import ranking
from .engine.placement import choose_positions
from .engine.policy import AnchorTally, check_compliance, distribution_gap
from .engine.relevance import compute_features, score_candidate
from .engine.types import EdgeProposal, ExternalKind, NodeType, ResolvedRule, VerificationStatus
from .models import ContentNode, ExternalEdge, InternalEdge
from .orchestrator import (
    GraphSnapshot,
    LinkState,
    apply_plan,
    load_link_states,
    plan_external_links,
    plan_internal_links,
    plan_pillar_links,
    propose_edge,
)
from .rules import get_rule
from .store import (
    anchor_counts,
    dead_end_queryset,
    edge_summary,
    get_engine_config,
    get_node,
    get_platform,
    orphan_queryset,
    published_nodes,
    with_degrees,
)

logger = logging.getLogger(__name__)

HISTOGRAM_BUCKETS = ((0, 19), (20, 39), (40, 59), (60, 79), (80, 100))

# Nodes with fewer active edges than this, both directions counted, are weak.
WEAK_LINK_THRESHOLD = 3
# Inbound Gini above which the platform's link distribution is uneven.
IMBALANCE_THRESHOLD = 0.3

SEVERITY_ORDER = {'high': 0, 'medium': 1, 'low': 2}


def _severity(node: ContentNode) -> str:
    return 'critical' if node.node_type == NodeType.PILLAR.value else 'warning'


def _listing(queryset, limit: int, offset: int) -> Dict[str, object]:
    total = queryset.count()
    rows = queryset.order_by('pk')[offset:offset + limit]
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'results': [
            {
                'node_id': node.pk,
                'title': node.title,
                'node_type': node.node_type,
                'language': node.language_code,
                'severity': _severity(node),
            }
            for node in rows
        ],
    }


def identify_orphan_articles(
    platform_id: int,
    language: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, object]:
    """Published nodes with no active inbound internal edge, paged."""

    get_platform(platform_id)
    return _listing(orphan_queryset(platform_id, language), limit, offset)


def identify_dead_ends(
    platform_id: int,
    language: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, object]:
    """Published nodes with no active outbound internal edge, paged."""

    get_platform(platform_id)
    return _listing(dead_end_queryset(platform_id, language), limit, offset)


def identify_weakly_connected(
    platform_id: int,
    min_links: int = 2,
    language: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, object]:
    """Published nodes whose active inbound plus outbound edges are fewer than ``min_links``.

    The weakest nodes come first.
    """

    get_platform(platform_id)
    queryset = (
        with_degrees(published_nodes(platform_id, language))
        .annotate(total=F('inbound') + F('outbound'))
        .filter(total__lt=min_links)
    )
    total = queryset.count()
    rows = queryset.order_by('total', 'pk')[offset:offset + limit]
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'min_links': min_links,
        'results': [
            {
                'node_id': node.pk,
                'title': node.title,
                'node_type': node.node_type,
                'language': node.language_code,
                'inbound': node.inbound,
                'outbound': node.outbound,
            }
            for node in rows
        ],
    }


def pillars_without_children(platform_id: int, language: Optional[str] = None) -> QuerySet:
    """Published pillars with no active edge to any of their own children."""

    linked = InternalEdge.objects.filter(is_active=True, target__pillar=F('source')).values('source_id')
    return (
        published_nodes(platform_id, language)
        .filter(node_type=NodeType.PILLAR.value)
        .exclude(pk__in=linked)
    )


def gini(values: List[int]) -> float:
    """Gini coefficient of a distribution of non-negative counts."""

    values = sorted(values)
    total = sum(values)
    count = len(values)
    if count == 0 or total == 0:
        return 0.0
    weighted = sum((index + 1) * value for index, value in enumerate(values))
    return round((2.0 * weighted) / (count * total) - (count + 1) / count, 4)


def generate_platform_report(platform_id: int, language: Optional[str] = None) -> Dict[str, object]:
    """Aggregate link balance figures and recommendations for a platform."""

    get_platform(platform_id)
    rule = get_rule(platform_id)
    nodes = published_nodes(platform_id, language)
    node_count = nodes.count()

    degrees = with_degrees(nodes).values_list('inbound', 'outbound')
    inbound = [row[0] for row in degrees]
    outbound = [row[1] for row in degrees]

    external = ExternalEdge.objects.filter(
        source__in=nodes,
        is_active=True,
        kind=ExternalKind.AUTHORITY.value,
    )
    histogram = {f'{low}-{high}': 0 for low, high in HISTOGRAM_BUCKETS}
    for score in external.values_list('authority_score', flat=True):
        for low, high in HISTOGRAM_BUCKETS:
            if low <= score <= high:
                histogram[f'{low}-{high}'] += 1
                break

    orphans = orphan_queryset(platform_id, language).count()
    dead_ends = dead_end_queryset(platform_id, language).count()
    broken = external.filter(verification_status=VerificationStatus.BROKEN.value).count()
    weak = identify_weakly_connected(platform_id, WEAK_LINK_THRESHOLD, language, limit=10)
    empty_pillars = list(pillars_without_children(platform_id, language).order_by('pk').values_list('pk', flat=True))
    inbound_gini = gini(inbound)

    return {
        'platform_id': platform_id,
        'language': language,
        'nodes': node_count,
        'orphans': orphans,
        'dead_ends': dead_ends,
        'weakly_connected': weak['total'],
        'pillars_without_children': empty_pillars,
        'average_inbound': round(sum(inbound) / node_count, 2) if node_count else 0.0,
        'average_outbound': round(sum(outbound) / node_count, 2) if node_count else 0.0,
        'inbound_gini': inbound_gini,
        'anchor_distribution': distribution_gap(rule, anchor_counts(platform_id, language)),
        'authority_histogram': histogram,
        'external_links': external.count(),
        'broken_external_links': broken,
        'pagerank': ranking.summary(platform_id),
        'recommendations': _recommendations(
            orphans=orphans,
            dead_ends=dead_ends,
            weak=weak,
            inbound_gini=inbound_gini,
            broken=broken,
            empty_pillars=empty_pillars,
        ),
        'link_flow': ranking.optimize_link_flow(platform_id)['recommendations'],
    }


def _recommendations(
    *,
    orphans: int,
    dead_ends: int,
    weak: Dict[str, object],
    inbound_gini: float,
    broken: int,
    empty_pillars: List[int],
) -> List[Dict[str, object]]:
    """Severity-tagged platform recommendations, most severe first."""

    items: List[Dict[str, object]] = []

    def add(code: str, severity: str, count: int, message: str, action: str, **extra: object) -> None:
        items.append({'code': code, 'severity': severity, 'count': count, 'message': message, 'action': action, **extra})

    if orphans:
        add('orphan_articles', 'high', orphans, f'{orphans} articles have no inbound links.',
            'Run the link repair to give each orphan an inbound link.')
    if dead_ends:
        add('dead_end_articles', 'medium', dead_ends, f'{dead_ends} articles have no outbound links.',
            'Process these articles to link them to related content.')
    if weak['total']:
        add('weakly_connected', 'low', weak['total'],
            f"{weak['total']} articles have fewer than {weak['min_links']} links in total.",
            'Add contextual links to and from these articles.',
            node_ids=[row['node_id'] for row in weak['results']])
    if inbound_gini > IMBALANCE_THRESHOLD:
        add('uneven_distribution', 'medium', 0, f'Inbound links are concentrated (Gini {inbound_gini}).',
            'Move links from heavily linked articles to weakly linked ones.')
    if broken:
        add('broken_links', 'high', broken, f'{broken} external links failed verification.',
            'Run verify_external_links and replace the failing sources.')
    if empty_pillars:
        add('empty_pillars', 'high', len(empty_pillars),
            f'{len(empty_pillars)} pillar articles do not link to any child article.',
            'Attach child articles to these pillars and process the pillars.',
            node_ids=empty_pillars)

    items.sort(key=lambda item: SEVERITY_ORDER[item['severity']])
    return items


def suggest_platform_improvements(platform_id: int, language: Optional[str] = None) -> Dict[str, object]:
    """Platform recommendations and PageRank flow advice, without the full figures."""

    report = generate_platform_report(platform_id, language)
    return {
        'platform_id': platform_id,
        'language': language,
        'recommendations': report['recommendations'],
        'link_flow': report['link_flow'],
    }


def suggest_link_improvements(node_id: int) -> Dict[str, object]:
    """Propose, without persisting, edges that would improve the node's compliance."""

    node = get_node(node_id)
    rule = get_rule(node.platform_id)
    snapshot = GraphSnapshot.load(node.platform_id)
    tally = AnchorTally(rule.anchor_distribution)
    state = load_link_states([node], get_engine_config().get('min_paragraph_words', 0))[node.pk]
    violations = check_compliance(rule, edge_summary(node))

    internal = plan_internal_links(node, rule, tally, snapshot=snapshot, state=state)
    internal += plan_pillar_links(node, rule, tally, snapshot=snapshot, state=state)
    external = plan_external_links(node, rule, snapshot=snapshot, state=state)
    return {
        'node_id': node.pk,
        'violations': [violation.as_dict() for violation in violations],
        'internal': [proposal.as_dict() for proposal in internal],
        'external': [proposal.as_dict() for proposal in external],
    }


def _plan_orphan_inbound(
    orphan: ContentNode,
    rule: ResolvedRule,
    tally: AnchorTally,
    snapshot: GraphSnapshot,
    states: Dict[int, LinkState],
) -> Optional[EdgeProposal]:
    """Pick the best-matching source with spare capacity for one orphan."""

    config = get_engine_config()
    target = snapshot.engine_node(orphan)
    best = None
    for source in snapshot.corpus:
        state = states.get(source.id)
        if source.id == target.id or state is None:
            continue
        if target.id in state.linked_targets or state.internal_count >= rule.max_internal_links:
            continue
        if source.language != target.language and not rule.allow_cross_language:
            continue
        score = score_candidate(compute_features(source, target, snapshot.context), config)
        if score < rule.min_relevance_score:
            continue
        positions = choose_positions(rule, state.paragraph_count, state.occupancy, 1, skip=state.short)
        if not positions:
            continue
        key = (-score, state.internal_count, source.id)
        if best is None or key < best[0]:
            best = (key, source, score, positions[0])

    if best is None:
        return None
    _, source, score, index = best
    proposal = propose_edge(source, target, score, index, tally, 'orphan repair')
    states[source.id].add(proposal)
    return proposal


def auto_repair_link_balance(
    platform_id: int,
    language: Optional[str] = None,
    dry_run: bool = True,
    limit: Optional[int] = None,
) -> Dict[str, object]:
    """Plan and optionally apply edges fixing orphans and dead-ends.

    The whole plan is computed before anything is written, so a dry run and
    a committed run over the same state produce the same plan. Existing
    edges, manual ones included, are never removed.
    """

    get_platform(platform_id)
    rule = get_rule(platform_id)
    snapshot = GraphSnapshot.load(platform_id)
    tally = AnchorTally(rule.anchor_distribution)
    min_words = get_engine_config().get('min_paragraph_words', 0)
    states = load_link_states(published_nodes(platform_id).order_by('pk'), min_words)

    orphans = list(orphan_queryset(platform_id, language).order_by('pk'))
    dead_ends = list(dead_end_queryset(platform_id, language).order_by('pk'))
    if limit is not None:
        orphans, dead_ends = orphans[:limit], dead_ends[:limit]

    plan: List[EdgeProposal] = []
    unresolved: List[int] = []
    for orphan in orphans:
        proposal = _plan_orphan_inbound(orphan, rule, tally, snapshot, states)
        if proposal is None:
            unresolved.append(orphan.pk)
        else:
            plan.append(proposal)

    for node in dead_ends:
        state = states[node.pk]
        needed = max(rule.min_internal_links - state.internal_count, 1)
        proposals = plan_internal_links(node, rule, tally, snapshot=snapshot, state=state, limit=needed)
        if not proposals and state.internal_count == 0:
            unresolved.append(node.pk)
        plan.extend(proposals)

    committed: List[Dict[str, object]] = []
    if not dry_run:
        committed = _apply_repair(plan)

    logger.info(
        'Link repair for platform %s (dry_run=%s): %d orphans, %d dead-ends, %d planned edges',
        platform_id,
        dry_run,
        len(orphans),
        len(dead_ends),
        len(plan),
    )
    return {
        'platform_id': platform_id,
        'language': language,
        'dry_run': dry_run,
        'orphans': len(orphans),
        'dead_ends': len(dead_ends),
        'plan': [proposal.as_dict() for proposal in plan],
        'unresolved': sorted(set(unresolved)),
        'committed_changes': committed,
    }


def _apply_repair(plan: List[EdgeProposal]) -> List[Dict[str, object]]:
    grouped: Dict[int, List[EdgeProposal]] = defaultdict(list)
    for proposal in plan:
        grouped[proposal.source_id].append(proposal)

    committed: List[Dict[str, object]] = []
    for source_id, proposals in grouped.items():
        with transaction.atomic():
            node = ContentNode.objects.select_for_update().get(pk=source_id)
            for edge in apply_plan(node, proposals):
                committed.append(_edge_dict(edge))
    return committed


def _edge_dict(edge: InternalEdge) -> Dict[str, object]:
    return {
        'source_id': edge.source_id,
        'target_id': edge.target_id,
        'anchor_text': edge.anchor_text,
        'anchor_category': edge.anchor_category,
        'paragraph_index': edge.paragraph_index,
        'relevance_score': round(edge.relevance_score, 2),
    }

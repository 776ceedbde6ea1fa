"""Per-article link processing: plan candidate links, then persist and embed them.

``process_article`` runs the internal, external/affiliate and pillar passes
for one node inside a transaction holding the node's row lock. Planning
(``plan_*``) is kept separate from persistence (``apply_*``) so the balance
repair can compute a full plan once and either report it or apply it as is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from django.conf import settings
from django.db import DatabaseError, OperationalError, transaction
from django.utils import timezone

from .engine.anchors import build_anchor, external_anchor
from .engine.context import CorpusContext, build_corpus_context
from .engine.injection import LinkSpec, inject_links, strip_auto_links
from .engine.placement import choose_positions, paragraph_texts, short_paragraphs
from .engine.policy import AnchorTally, check_compliance, health_grade, health_score, paragraph_occupancy
from .engine.relevance import compute_features, rank_candidates, score_candidate, score_reason, select_domains
from .engine.types import (
    EdgeOrigin,
    EdgeProposal,
    ExternalKind,
    Node,
    NodeType,
    ResolvedRule,
    Shortfall,
    SourceType,
)
from .errors import LinkGraphError, NotFoundError, TransientFailure, ValidationError
from .jobs import get_dispatcher
from .models import AffiliateOffer, ContentNode, ExternalEdge, InternalEdge
from .ranking import current_scores
from .rules import get_rule
from .store import (
    designated_pillar_id,
    edge_summary,
    get_engine_config,
    get_node,
    get_platform,
    inbound_counts,
    load_corpus,
    load_domains,
    published_nodes,
    to_engine_node,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessOptions:
    """Which passes to run for an article."""

    internal: bool = True
    external: bool = True
    affiliate: bool = True
    pillar: bool = True
    force: bool = False
    improve_only: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'ProcessOptions':
        data = data or {}
        unknown = sorted(set(data) - set(cls.__dataclass_fields__))
        if unknown:
            raise ValidationError([f'Unknown processing options: {", ".join(unknown)}.'])
        for key, value in data.items():
            if not isinstance(value, bool):
                raise ValidationError([f'Option {key} must be a boolean.'])
        return cls(**data)

    def as_dict(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass
class ArticleResult:
    """Outcome of processing one article."""

    node_id: int
    added_internal: int = 0
    added_external: int = 0
    added_affiliate: int = 0
    added_pillar: int = 0
    warnings: List[Shortfall] = field(default_factory=list)
    skipped: bool = False

    def warn(self, code: str, message: str) -> None:
        self.warnings.append(Shortfall(code, message))

    def as_dict(self) -> Dict[str, object]:
        return {
            'node_id': self.node_id,
            'added_internal': self.added_internal,
            'added_external': self.added_external,
            'added_affiliate': self.added_affiliate,
            'added_pillar': self.added_pillar,
            'warnings': [warning.as_dict() for warning in self.warnings],
            'skipped': self.skipped,
        }


@dataclass(frozen=True)
class ExternalProposal:
    """External edge proposed by the planner, not yet persisted."""

    source_id: int
    url: str
    anchor_text: str
    kind: ExternalKind
    paragraph_index: int
    domain_id: Optional[int] = None
    authority_score: int = 0
    source_type: Optional[SourceType] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            'source_id': self.source_id,
            'url': self.url,
            'anchor_text': self.anchor_text,
            'kind': self.kind.value,
            'paragraph_index': self.paragraph_index,
            'domain_id': self.domain_id,
            'authority_score': self.authority_score,
            'source_type': self.source_type.value if self.source_type else None,
        }


@dataclass
class LinkState:
    """A node's current edges and paragraph occupancy.

    Planned additions are recorded with :meth:`add` so several plans for the
    same source never exceed its caps before anything is persisted.
    """

    node_id: int
    paragraph_count: int
    short: List[int] = field(default_factory=list)
    linked_targets: Set[int] = field(default_factory=set)
    internal_count: int = 0
    authority_count: int = 0
    affiliate_count: int = 0
    linked_urls: Set[str] = field(default_factory=set)
    linked_domains: Set[int] = field(default_factory=set)
    government_linked: bool = False
    occupancy: Dict[int, int] = field(default_factory=dict)

    def add(self, proposal: EdgeProposal) -> None:
        self.linked_targets.add(proposal.target_id)
        self.internal_count += 1
        self._occupy(proposal.paragraph_index)

    def add_external(self, proposal: ExternalProposal) -> None:
        self.linked_urls.add(proposal.url)
        if proposal.domain_id is not None:
            self.linked_domains.add(proposal.domain_id)
        if proposal.kind == ExternalKind.AFFILIATE:
            self.affiliate_count += 1
        else:
            self.authority_count += 1
            if proposal.source_type == SourceType.GOVERNMENT:
                self.government_linked = True
        self._occupy(proposal.paragraph_index)

    def _occupy(self, index: Optional[int]) -> None:
        if index is not None:
            self.occupancy[index] = self.occupancy.get(index, 0) + 1


def load_link_states(nodes: Iterable[ContentNode], min_paragraph_words: int = 0) -> Dict[int, LinkState]:
    """Build :class:`LinkState` objects for many nodes with two edge queries."""

    nodes = list(nodes)
    states: Dict[int, LinkState] = {}
    for node in nodes:
        texts = paragraph_texts(node.content)
        states[node.pk] = LinkState(
            node_id=node.pk,
            paragraph_count=len(texts),
            short=short_paragraphs(texts, min_paragraph_words),
        )
    ids = list(states)

    internal_positions: Dict[int, List[Optional[int]]] = {node_id: [] for node_id in ids}
    for source_id, target_id, index, active in InternalEdge.objects.filter(source_id__in=ids).values_list(
        'source_id', 'target_id', 'paragraph_index', 'is_active'
    ):
        state = states[source_id]
        state.linked_targets.add(target_id)
        if active:
            state.internal_count += 1
            internal_positions[source_id].append(index)

    external_positions: Dict[int, List[Optional[int]]] = {node_id: [] for node_id in ids}
    for edge in ExternalEdge.objects.filter(source_id__in=ids):
        state = states[edge.source_id]
        state.linked_urls.add(edge.url)
        if edge.domain_id is not None:
            state.linked_domains.add(edge.domain_id)
        if not edge.is_active:
            continue
        external_positions[edge.source_id].append(edge.paragraph_index)
        if edge.kind == ExternalKind.AFFILIATE.value:
            state.affiliate_count += 1
        else:
            state.authority_count += 1
            if edge.source_type == SourceType.GOVERNMENT.value:
                state.government_linked = True

    for node_id, state in states.items():
        state.occupancy = paragraph_occupancy(internal_positions[node_id], external_positions[node_id])
    return states


def load_link_state(node: ContentNode) -> LinkState:
    return load_link_states([node], get_engine_config().get('min_paragraph_words', 0))[node.pk]


@dataclass
class GraphSnapshot:
    """Published corpus of one platform with its scoring context."""

    platform_id: int
    corpus: List[Node]
    context: CorpusContext

    @classmethod
    def load(cls, platform_id: int) -> 'GraphSnapshot':
        corpus = load_corpus(platform_id)
        context = build_corpus_context(
            corpus,
            pagerank=current_scores(platform_id),
            inbound=inbound_counts(platform_id),
        )
        return cls(platform_id=platform_id, corpus=corpus, context=context)

    def engine_node(self, node: ContentNode) -> Node:
        return self.context.node_map.get(node.pk) or to_engine_node(node)


class InjectionSession:
    """Shared state for a run over many articles.

    Holds one anchor tally per platform, counting only the categories assigned
    during this run, and lazily loaded graph snapshots.
    """

    def __init__(self):
        self.tallies: Dict[int, AnchorTally] = {}
        self.snapshots: Dict[int, GraphSnapshot] = {}

    def tally(self, platform_id: int, rule: ResolvedRule) -> AnchorTally:
        if platform_id not in self.tallies:
            self.tallies[platform_id] = AnchorTally(rule.anchor_distribution)
        return self.tallies[platform_id]

    def snapshot(self, platform_id: int) -> GraphSnapshot:
        if platform_id not in self.snapshots:
            self.snapshots[platform_id] = GraphSnapshot.load(platform_id)
        return self.snapshots[platform_id]


# Planning -------------------------------------------------------------------


def plan_internal_links(
    node: ContentNode,
    rule: ResolvedRule,
    tally: AnchorTally,
    *,
    snapshot: GraphSnapshot,
    state: Optional[LinkState] = None,
    limit: Optional[int] = None,
    reserve: int = 0,
    exclude_ids: Iterable[int] = (),
) -> List[EdgeProposal]:
    """Propose internal edges for ``node`` up to its remaining capacity.

    ``reserve`` keeps slots free under ``max_internal_links`` for a later
    pass. The proposals are recorded on ``state`` when one is given.
    """

    config = get_engine_config()
    state = state or load_link_state(node)
    capacity = rule.max_internal_links - state.internal_count - reserve
    if limit is not None:
        capacity = min(capacity, limit)
    if capacity <= 0:
        return []

    source = snapshot.engine_node(node)
    excluded = set(state.linked_targets) | set(exclude_ids)
    ranked = rank_candidates(
        source,
        snapshot.corpus,
        snapshot.context,
        config,
        rule,
        needed=capacity,
        exclude_ids=excluded,
    )
    ranked = ranked[: min(capacity, int(config.get('candidate_pool_size', 200)))]
    positions = choose_positions(rule, state.paragraph_count, state.occupancy, len(ranked), skip=state.short)

    proposals: List[EdgeProposal] = []
    for candidate, index in zip(ranked, positions):
        if candidate.cross_language:
            reason = 'cross-language fallback'
        else:
            reason = score_reason(compute_features(source, candidate.node, snapshot.context), config) or 'relevance'
        proposal = propose_edge(source, candidate.node, candidate.score, index, tally, reason)
        state.add(proposal)
        proposals.append(proposal)
    return proposals


def plan_pillar_links(
    node: ContentNode,
    rule: ResolvedRule,
    tally: AnchorTally,
    *,
    snapshot: GraphSnapshot,
    state: Optional[LinkState] = None,
    result: Optional[ArticleResult] = None,
) -> List[EdgeProposal]:
    """Propose the pillar edge of a child, or the child edges of a pillar."""

    config = get_engine_config()
    state = state or load_link_state(node)
    source = snapshot.engine_node(node)
    room = rule.max_internal_links - state.internal_count

    if node.node_type == NodeType.PILLAR.value:
        linked_children = (
            published_nodes(node.platform_id)
            .filter(pillar=node, pk__in=state.linked_targets)
            .count()
        )
        quota = min(rule.max_pillar_children - linked_children, room)
        if quota <= 0:
            return []
        children = [
            child
            for child in published_nodes(node.platform_id).filter(pillar=node).order_by('pk')
            if child.pk not in state.linked_targets
        ][:quota]
        positions = choose_positions(rule, state.paragraph_count, state.occupancy, len(children), skip=state.short)
        proposals = []
        for child, index in zip(children, positions):
            target = snapshot.engine_node(child)
            score = score_candidate(compute_features(source, target, snapshot.context), config)
            proposal = propose_edge(source, target, score, index, tally, 'pillar child')
            state.add(proposal)
            proposals.append(proposal)
        return proposals

    if not rule.require_pillar_link:
        return []
    pillar_id = designated_pillar_id(node)
    if pillar_id is None:
        if result is not None:
            result.warn('pillar_missing', 'No pillar is available for this article.')
        return []
    if pillar_id in state.linked_targets:
        return []
    if room <= 0:
        if result is not None:
            result.warn('pillar_no_capacity', 'Internal link cap reached before the pillar link could be added.')
        return []
    positions = choose_positions(rule, state.paragraph_count, state.occupancy, 1, skip=state.short)
    if not positions:
        if result is not None:
            result.warn('pillar_no_position', 'No paragraph could take the pillar link.')
        return []

    pillar = ContentNode.objects.get(pk=pillar_id)
    target = snapshot.engine_node(pillar)
    score = score_candidate(compute_features(source, target, snapshot.context), config)
    proposal = propose_edge(source, target, score, positions[0], tally, 'pillar')
    state.add(proposal)
    return [proposal]


def plan_external_links(
    node: ContentNode,
    rule: ResolvedRule,
    *,
    snapshot: GraphSnapshot,
    state: Optional[LinkState] = None,
    result: Optional[ArticleResult] = None,
) -> List[ExternalProposal]:
    """Propose authority-domain citations following the rule's source priority."""

    state = state or load_link_state(node)
    capacity = rule.max_external_links - state.authority_count
    source = snapshot.engine_node(node)
    domains = select_domains(source, load_domains(), rule, needed=capacity, exclude_ids=state.linked_domains)
    domains = [domain for domain in domains if domain.url not in state.linked_urls]
    positions = choose_positions(rule, state.paragraph_count, state.occupancy, len(domains), skip=state.short)

    proposals: List[ExternalProposal] = []
    for domain, index in zip(domains, positions):
        proposal = ExternalProposal(
            source_id=node.pk,
            url=domain.url,
            anchor_text=external_anchor(domain),
            kind=ExternalKind.AUTHORITY,
            paragraph_index=index,
            domain_id=domain.id,
            authority_score=domain.authority_score,
            source_type=domain.source_type,
        )
        state.add_external(proposal)
        proposals.append(proposal)

    if result is not None:
        if state.authority_count < rule.min_external_links:
            result.warn(
                'external_below_min',
                f'Only {state.authority_count} external links meet the rule; minimum is {rule.min_external_links}.',
            )
        if rule.require_government and not state.government_linked:
            result.warn('government_missing', 'No external domain met the government-source requirement.')
    return proposals


def plan_affiliate_links(
    node: ContentNode,
    rule: ResolvedRule,
    *,
    state: Optional[LinkState] = None,
) -> List[ExternalProposal]:
    """Propose affiliate offers of the node's platform matching its country and themes."""

    state = state or load_link_state(node)
    capacity = rule.max_affiliate_links - state.affiliate_count
    if capacity <= 0:
        return []
    themes = {str(theme).lower() for theme in (node.themes or [])}
    country = (node.country_code or '').lower()

    offers = []
    for offer in AffiliateOffer.objects.filter(platform_id=node.platform_id, is_active=True).order_by('pk'):
        if offer.url in state.linked_urls:
            continue
        countries = {str(code).lower() for code in (offer.countries or [])}
        if countries and country not in countries:
            continue
        offer_themes = {str(theme).lower() for theme in (offer.themes or [])}
        if offer_themes and not offer_themes & themes:
            continue
        offers.append(offer)
    offers = offers[:capacity]
    positions = choose_positions(rule, state.paragraph_count, state.occupancy, len(offers), skip=state.short)

    proposals = []
    for offer, index in zip(offers, positions):
        proposal = ExternalProposal(
            source_id=node.pk,
            url=offer.url,
            anchor_text=offer.anchor_text or offer.name,
            kind=ExternalKind.AFFILIATE,
            paragraph_index=index,
        )
        state.add_external(proposal)
        proposals.append(proposal)
    return proposals


def propose_edge(source: Node, target: Node, score: float, index: int, tally: AnchorTally, reason: str) -> EdgeProposal:
    category = tally.next_category()
    tally.record(category)
    return EdgeProposal(
        source_id=source.id,
        target_id=target.id,
        anchor_text=build_anchor(category, source, target, get_engine_config().anchor_templates),
        anchor_category=category,
        paragraph_index=index,
        relevance_score=score,
        reason=reason,
    )


# Persistence ----------------------------------------------------------------


def apply_plan(node: ContentNode, proposals: List[EdgeProposal]) -> List[InternalEdge]:
    """Persist internal proposals for ``node`` and embed their anchors.

    Proposals whose target is already linked from ``node`` are skipped.
    """

    if not proposals:
        return []
    targets = ContentNode.objects.in_bulk([proposal.target_id for proposal in proposals])
    existing = set(
        InternalEdge.objects.filter(source=node, target_id__in=list(targets)).values_list('target_id', flat=True)
    )

    edges: List[InternalEdge] = []
    specs: List[LinkSpec] = []
    for proposal in proposals:
        if proposal.source_id != node.pk:
            raise ValidationError([f'Proposal source {proposal.source_id} does not match node {node.pk}.'])
        if proposal.target_id == node.pk:
            raise ValidationError([f'Node {node.pk} cannot link to itself.'])
        target = targets.get(proposal.target_id)
        if target is None:
            raise NotFoundError(f'Content node {proposal.target_id} does not exist.')
        if proposal.target_id in existing:
            continue
        existing.add(proposal.target_id)
        edges.append(InternalEdge(
            source=node,
            target=target,
            anchor_text=proposal.anchor_text,
            anchor_category=proposal.anchor_category.value,
            paragraph_index=proposal.paragraph_index,
            origin=EdgeOrigin.AUTOMATIC.value,
            relevance_score=proposal.relevance_score,
        ))
        specs.append(LinkSpec(
            paragraph_index=proposal.paragraph_index,
            href=target.href,
            anchor_text=proposal.anchor_text,
            css_class='internal-link',
            attrs={
                'link-kind': 'internal',
                'target-id': str(target.pk),
                'anchor-category': proposal.anchor_category.value,
            },
        ))

    created = InternalEdge.objects.bulk_create(edges)
    _embed(node, specs)
    return created


def apply_external_plan(node: ContentNode, proposals: List[ExternalProposal]) -> List[ExternalEdge]:
    """Persist external proposals for ``node`` and embed their anchors."""

    if not proposals:
        return []
    existing = set(node.external_edges.values_list('url', flat=True))
    edges: List[ExternalEdge] = []
    specs: List[LinkSpec] = []
    for proposal in proposals:
        if proposal.url in existing:
            continue
        existing.add(proposal.url)
        edges.append(ExternalEdge(
            source=node,
            domain_id=proposal.domain_id,
            url=proposal.url,
            anchor_text=proposal.anchor_text,
            kind=proposal.kind.value,
            authority_score=proposal.authority_score,
            source_type=proposal.source_type.value if proposal.source_type else '',
            paragraph_index=proposal.paragraph_index,
            origin=EdgeOrigin.AUTOMATIC.value,
        ))
        specs.append(LinkSpec(
            paragraph_index=proposal.paragraph_index,
            href=proposal.url,
            anchor_text=proposal.anchor_text,
            css_class='external-link',
            attrs={'link-kind': proposal.kind.value},
        ))

    created = ExternalEdge.objects.bulk_create(edges)
    _embed(node, specs)
    return created


def _embed(node: ContentNode, specs: List[LinkSpec]) -> None:
    if not specs:
        return
    html, placed = inject_links(node.content, specs)
    if len(placed) < len(specs):
        logger.warning('Node %s: %d of %d anchors had no paragraph to land in', node.pk, len(specs) - len(placed), len(specs))
    node.content = html
    node.save(update_fields=['content', 'updated_at'])


def _reset_automatic_links(node: ContentNode) -> None:
    """Remove automatic edges and their anchors; manual ones are kept."""

    removed_internal, _ = node.outbound_edges.filter(origin=EdgeOrigin.AUTOMATIC.value).delete()
    removed_external, _ = node.external_edges.filter(origin=EdgeOrigin.AUTOMATIC.value).delete()
    node.content = strip_auto_links(node.content)
    node.save(update_fields=['content', 'updated_at'])
    logger.info('Node %s: removed %d internal and %d external automatic edges', node.pk, removed_internal, removed_external)


# Entry points ---------------------------------------------------------------


def process_article(
    node_id: int,
    options: Optional[ProcessOptions] = None,
    *,
    session: Optional[InjectionSession] = None,
) -> ArticleResult:
    """Run the linking passes for one article and persist the outcome.

    Internal links are added before external and affiliate links, and the
    pillar check runs last so it sees the updated internal count. Unmet
    requirements are reported as warnings on the result.
    """

    options = options or ProcessOptions()
    session = session or InjectionSession()

    with transaction.atomic():
        try:
            node = ContentNode.objects.select_for_update().get(pk=node_id)
        except ContentNode.DoesNotExist as exc:
            raise NotFoundError(f'Content node {node_id} does not exist.') from exc
        except OperationalError as exc:
            raise TransientFailure(f'Content node {node_id} could not be locked: {exc}') from exc

        result = ArticleResult(node_id=node.pk)
        if node.links_processed_at is not None and not (options.force or options.improve_only):
            result.skipped = True
            return result

        if options.force:
            _reset_automatic_links(node)

        rule = get_rule(node.platform_id)
        snapshot = session.snapshot(node.platform_id)
        tally = session.tally(node.platform_id, rule)
        config = get_engine_config()
        state = load_link_states([node], config.get('min_paragraph_words', 0))[node.pk]

        if options.internal:
            pending_pillar = _missing_pillar_id(node, rule, state) if options.pillar else None
            proposals = plan_internal_links(
                node,
                rule,
                tally,
                snapshot=snapshot,
                state=state,
                reserve=1 if pending_pillar else 0,
                exclude_ids=[pending_pillar] if pending_pillar else (),
            )
            result.added_internal = len(apply_plan(node, proposals))

        if options.external and not options.improve_only:
            proposals = plan_external_links(node, rule, snapshot=snapshot, state=state, result=result)
            result.added_external = len(apply_external_plan(node, proposals))

        if options.affiliate and not options.improve_only:
            proposals = plan_affiliate_links(node, rule, state=state)
            result.added_affiliate = len(apply_external_plan(node, proposals))

        if options.pillar:
            proposals = plan_pillar_links(node, rule, tally, snapshot=snapshot, state=state, result=result)
            result.added_pillar = len(apply_plan(node, proposals))

        if options.internal and state.internal_count < rule.min_internal_links:
            result.warn(
                'internal_below_min',
                f'Only {state.internal_count} internal links could be placed; minimum is {rule.min_internal_links}.',
            )

        node.links_processed_at = timezone.now()
        node.save(update_fields=['links_processed_at', 'updated_at'])

    logger.info(
        'Processed node %s: +%d internal, +%d external, +%d affiliate, +%d pillar, %d warnings',
        node.pk,
        result.added_internal,
        result.added_external,
        result.added_affiliate,
        result.added_pillar,
        len(result.warnings),
    )
    return result


def _missing_pillar_id(node: ContentNode, rule: ResolvedRule, state: LinkState) -> Optional[int]:
    """The pillar the pillar pass will link, kept out of the internal pass."""

    if not rule.require_pillar_link or node.node_type == NodeType.PILLAR.value:
        return None
    pillar_id = designated_pillar_id(node)
    if pillar_id is None or pillar_id in state.linked_targets:
        return None
    return pillar_id


def process_batch(
    node_ids: Iterable[int],
    options: Optional[ProcessOptions] = None,
    *,
    session: Optional[InjectionSession] = None,
) -> Dict[str, object]:
    """Process many articles sharing one anchor tally.

    A node that fails for any reason is reported under ``failed`` and the
    batch carries on; each node is committed on its own.
    """

    session = session or InjectionSession()
    processed: List[int] = []
    skipped: List[int] = []
    failed: Dict[int, str] = {}

    for node_id in node_ids:
        try:
            result = process_article(node_id, options, session=session)
        except (LinkGraphError, DatabaseError) as exc:
            logger.warning('Node %s failed: %s', node_id, exc)
            failed[node_id] = str(exc)
            continue
        except Exception as exc:
            logger.exception('Node %s failed unexpectedly', node_id)
            failed[node_id] = f'{exc.__class__.__name__}: {exc}'
            continue
        (skipped if result.skipped else processed).append(node_id)

    return {'processed': processed, 'skipped': skipped, 'failed': failed}


def process_batch_job(node_ids: List[int], options: Optional[dict] = None) -> Dict[str, object]:
    """Queue-friendly entry point taking only serializable arguments."""

    return process_batch(node_ids, ProcessOptions.from_dict(options))


def dispatch_platform_batch(
    platform_id: int,
    options: Optional[ProcessOptions] = None,
    *,
    language: Optional[str] = None,
    include_processed: bool = False,
) -> Dict[str, object]:
    """Fan a platform's published articles into waves of batch jobs.

    Each wave is submitted with a delay growing by ``LINKGRAPH_BATCH_WAVE_DELAY``
    seconds so workers are not flooded.
    """

    get_platform(platform_id)
    options = options or ProcessOptions()
    queryset = published_nodes(platform_id, language).order_by('pk')
    if not (include_processed or options.force):
        queryset = queryset.filter(links_processed_at__isnull=True)
    node_ids = list(queryset.values_list('pk', flat=True))

    wave_size = max(1, int(getattr(settings, 'LINKGRAPH_BATCH_WAVE_SIZE', 50)))
    wave_delay = float(getattr(settings, 'LINKGRAPH_BATCH_WAVE_DELAY', 30))
    dispatcher = get_dispatcher()

    waves = 0
    for start in range(0, len(node_ids), wave_size):
        dispatcher.submit(
            process_batch_job,
            node_ids[start:start + wave_size],
            options.as_dict(),
            delay=waves * wave_delay,
        )
        waves += 1

    logger.info('Dispatched %d nodes of platform %s in %d waves', len(node_ids), platform_id, waves)
    return {'platform_id': platform_id, 'nodes': len(node_ids), 'waves': waves}


def check_article_link_health(node_id: int) -> Dict[str, object]:
    """Evaluate a node's existing edges against the current rule, read-only.

    The result carries the rule violations, a 0-100 health score with its
    letter grade and the raw link counts. A non-pillar node without active
    inbound edges is flagged as an orphan and scored down.
    """

    node = get_node(node_id)
    rule = get_rule(node.platform_id)
    summary = edge_summary(node)
    violations = check_compliance(rule, summary)
    inbound = node.inbound_edges.filter(is_active=True).count()
    orphan = inbound == 0 and node.node_type != NodeType.PILLAR.value
    score = health_score(violations, broken_links=summary.external_broken, orphan=orphan)
    return {
        'node_id': node.pk,
        'compliant': not violations,
        'score': score,
        'grade': health_grade(score),
        'violations': [violation.as_dict() for violation in violations],
        'metrics': {
            'internal_links': summary.internal_count,
            'inbound_links': inbound,
            'orphan': orphan,
            'broken_external_links': summary.external_broken,
            'external_links': summary.external_count,
            'affiliate_links': summary.affiliate_count,
            'paragraphs': summary.paragraph_count,
            'links_to_pillar': summary.links_to_pillar,
            'status': node.status,
            'processed': node.links_processed_at is not None,
        },
    }


def unprocessed_node_ids(platform_id: int, limit: Optional[int] = None) -> List[int]:
    queryset = (
        published_nodes(platform_id)
        .filter(links_processed_at__isnull=True)
        .order_by('pk')
        .values_list('pk', flat=True)
    )
    if limit:
        queryset = queryset[:limit]
    return list(queryset)

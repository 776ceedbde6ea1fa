"""Read helpers turning ORM rows into engine snapshots."""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Count, Q, QuerySet

from .engine.config import EngineConfig, load_config
from .engine.placement import paragraph_texts
from .engine.policy import EdgeSummary
from .engine.text import html_to_text
from .engine.types import Domain, ExternalKind, Node, NodeStatus, NodeType, SourceType, VerificationStatus
from .errors import NotFoundError
from .models import AuthorityDomain, ContentNode, InternalEdge, Platform


@lru_cache(maxsize=4)
def _load_engine_config(path: Optional[str]) -> EngineConfig:
    return load_config(path)


def get_engine_config() -> EngineConfig:
    """Return the engine configuration for ``LINKGRAPH_CONFIG_PATH``."""

    return _load_engine_config(getattr(settings, 'LINKGRAPH_CONFIG_PATH', None) or None)


def get_platform(platform_id: int) -> Platform:
    try:
        return Platform.objects.get(pk=platform_id)
    except Platform.DoesNotExist as exc:
        raise NotFoundError(f'Platform {platform_id} does not exist.') from exc


def get_node(node_id: int) -> ContentNode:
    try:
        return ContentNode.objects.select_related('platform').get(pk=node_id)
    except ContentNode.DoesNotExist as exc:
        raise NotFoundError(f'Content node {node_id} does not exist.') from exc


def published_nodes(platform_id: int, language: Optional[str] = None) -> QuerySet:
    queryset = ContentNode.objects.filter(platform_id=platform_id, status=NodeStatus.PUBLISHED.value)
    if language:
        queryset = queryset.filter(language_code=language)
    return queryset


def to_engine_node(node: ContentNode) -> Node:
    return Node(
        id=node.pk,
        platform_id=node.platform_id,
        title=node.title,
        text=html_to_text(node.content),
        country=node.country_code or None,
        language=node.language_code,
        themes=[str(theme) for theme in (node.themes or [])],
        type=NodeType(node.node_type),
        pillar_id=node.pillar_id,
        url=node.href,
    )


def to_engine_domain(domain: AuthorityDomain) -> Domain:
    return Domain(
        id=domain.pk,
        domain=domain.domain,
        name=domain.name or domain.domain,
        source_type=SourceType(domain.source_type),
        authority_score=domain.authority_score,
        country=domain.country_code or None,
        themes=list(domain.themes or []),
        languages=list(domain.languages or []),
        broken=domain.failure_count > 0,
    )


def load_corpus(platform_id: int) -> List[Node]:
    """Return every published node of the platform as an engine snapshot."""

    return [to_engine_node(node) for node in published_nodes(platform_id).order_by('pk')]


def load_domains() -> List[Domain]:
    return [to_engine_domain(domain) for domain in AuthorityDomain.objects.filter(is_active=True).order_by('pk')]


def inbound_counts(platform_id: int) -> Dict[int, int]:
    rows = (
        InternalEdge.objects
        .filter(target__platform_id=platform_id, is_active=True)
        .values('target_id')
        .annotate(total=Count('id'))
    )
    return {row['target_id']: row['total'] for row in rows}


def anchor_counts(platform_id: int, language: Optional[str] = None) -> Dict[str, int]:
    """Count active internal edges of the platform per anchor category."""

    queryset = InternalEdge.objects.filter(source__platform_id=platform_id, is_active=True)
    if language:
        queryset = queryset.filter(source__language_code=language)
    rows = queryset.values('anchor_category').annotate(total=Count('id'))
    return {row['anchor_category']: row['total'] for row in rows}


def edge_summary(node: ContentNode) -> EdgeSummary:
    """Collect a node's active edges into an :class:`EdgeSummary`."""

    internal = list(node.outbound_edges.filter(is_active=True).values('target_id', 'paragraph_index'))
    external = list(node.external_edges.filter(is_active=True))
    authority = [edge for edge in external if edge.kind == ExternalKind.AUTHORITY.value]
    affiliate = [edge for edge in external if edge.kind == ExternalKind.AFFILIATE.value]
    pillar_id = designated_pillar_id(node)

    return EdgeSummary(
        node_type=NodeType(node.node_type),
        paragraph_count=len(paragraph_texts(node.content)),
        internal_paragraphs=[row['paragraph_index'] for row in internal],
        external_paragraphs=[edge.paragraph_index for edge in authority],
        external_scores=[edge.authority_score for edge in authority],
        external_source_types=[SourceType(edge.source_type) for edge in authority if edge.source_type],
        external_broken=sum(1 for edge in authority if edge.verification_status == VerificationStatus.BROKEN.value),
        affiliate_paragraphs=[edge.paragraph_index for edge in affiliate],
        links_to_pillar=pillar_id is not None and any(row['target_id'] == pillar_id for row in internal),
        has_pillar=pillar_id is not None,
    )


def designated_pillar_id(node: ContentNode) -> Optional[int]:
    """Return the explicit pillar, else the best-matching pillar of the platform.

    An explicit pillar that is unpublished or on another platform is ignored.
    """

    if node.node_type == NodeType.PILLAR.value:
        return None
    if node.pillar_id and published_nodes(node.platform_id).filter(pk=node.pillar_id).exists():
        return node.pillar_id

    pillars = list(
        published_nodes(node.platform_id, node.language_code)
        .filter(node_type=NodeType.PILLAR.value)
        .exclude(pk=node.pk)
        .order_by('pk')
    )
    if not pillars:
        return None
    themes = {str(theme).lower() for theme in (node.themes or [])}

    def overlap(pillar: ContentNode) -> int:
        return len(themes & {str(theme).lower() for theme in (pillar.themes or [])})

    best = max(pillars, key=lambda pillar: (overlap(pillar), -pillar.pk))
    return best.pk


def orphan_queryset(platform_id: int, language: Optional[str] = None) -> QuerySet:
    return (
        published_nodes(platform_id, language)
        .annotate(active_inbound=Count('inbound_edges', filter=Q(inbound_edges__is_active=True)))
        .filter(active_inbound=0)
    )


def dead_end_queryset(platform_id: int, language: Optional[str] = None) -> QuerySet:
    return (
        published_nodes(platform_id, language)
        .annotate(active_outbound=Count('outbound_edges', filter=Q(outbound_edges__is_active=True)))
        .filter(active_outbound=0)
    )


def with_degrees(queryset: QuerySet) -> QuerySet:
    """Annotate nodes with their active ``inbound`` and ``outbound`` edge counts."""

    return queryset.annotate(
        inbound=Count('inbound_edges', filter=Q(inbound_edges__is_active=True), distinct=True),
        outbound=Count('outbound_edges', filter=Q(outbound_edges__is_active=True), distinct=True),
    )

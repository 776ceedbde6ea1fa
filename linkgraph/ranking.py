"""PageRank snapshots per platform."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from .engine.pagerank import compute_pagerank
from .engine.types import NodeType
from .errors import ConflictError
from .models import InternalEdge, PageRankRun, PageRankScore
from .store import get_engine_config, get_platform, published_nodes, with_degrees

logger = logging.getLogger(__name__)

LOCK_KEY = 'linkgraph:pagerank:{platform_id}'

# Link flow thresholds on scores normalized so the platform average is 100.
HIGH_SCORE = 100.0
LOW_SCORE = 50.0
HIGH_SCORE_MIN_OUTBOUND = 5
LOW_SCORE_MAX_OUTBOUND = 10
PILLAR_MIN_INBOUND = 5

PRIORITY_ORDER = {'high': 0, 'medium': 1, 'low': 2}


def calculate_for_platform(platform_id: int, *, keep_runs: Optional[int] = None) -> Dict[str, object]:
    """Recompute PageRank for a platform and publish it as the current run.

    Only one computation per platform runs at a time; a concurrent call gets
    a :class:`ConflictError`. The new scores are written completely before
    the run is flipped current, so readers keep seeing the previous run until
    then. A run that hit the iteration cap is still published.
    """

    get_platform(platform_id)
    key = LOCK_KEY.format(platform_id=platform_id)
    timeout = int(getattr(settings, 'LINKGRAPH_PAGERANK_LOCK_TIMEOUT', 600))
    if not cache.add(key, timezone.now().isoformat(), timeout):
        raise ConflictError(f'PageRank is already running for platform {platform_id}.')
    try:
        return _calculate(platform_id, keep_runs)
    finally:
        cache.delete(key)


def _calculate(platform_id: int, keep_runs: Optional[int]) -> Dict[str, object]:
    config = get_engine_config()
    damping = float(config.pagerank('damping'))
    started_at = timezone.now()

    node_ids = list(published_nodes(platform_id).order_by('pk').values_list('pk', flat=True))
    edges = list(
        InternalEdge.objects
        .filter(source__platform_id=platform_id, is_active=True)
        .values_list('source_id', 'target_id')
    )
    result = compute_pagerank(
        node_ids,
        edges,
        damping=damping,
        tolerance=float(config.pagerank('tolerance')),
        max_iterations=int(config.pagerank('max_iterations')),
    )
    if not result.converged:
        logger.warning(
            'PageRank for platform %s stopped after %d iterations (delta %.2e)',
            platform_id,
            result.iterations,
            result.delta,
        )

    completed_at = timezone.now()
    with transaction.atomic():
        run = PageRankRun.objects.create(
            platform_id=platform_id,
            started_at=started_at,
            iterations=result.iterations,
            converged=result.converged,
            delta=result.delta,
            damping=damping,
            node_count=len(node_ids),
        )
        PageRankScore.objects.bulk_create(
            [
                PageRankScore(
                    run=run,
                    node_id=node_id,
                    platform_id=platform_id,
                    score=score,
                    computed_at=completed_at,
                    iterations=result.iterations,
                )
                for node_id, score in result.scores.items()
            ],
            batch_size=1000,
        )
        PageRankRun.objects.filter(platform_id=platform_id, is_current=True).update(is_current=False)
        run.is_current = True
        run.completed_at = completed_at
        run.save(update_fields=['is_current', 'completed_at'])

    _prune_runs(platform_id, keep_runs)
    logger.info(
        'PageRank for platform %s: %d scores, %d iterations, converged=%s',
        platform_id,
        len(result.scores),
        result.iterations,
        result.converged,
    )
    return {
        'platform_id': platform_id,
        'run_id': run.pk,
        'scores_written': len(result.scores),
        'iterations': result.iterations,
        'converged': result.converged,
        'delta': result.delta,
    }


def _prune_runs(platform_id: int, keep_runs: Optional[int]) -> None:
    keep = keep_runs if keep_runs is not None else int(getattr(settings, 'LINKGRAPH_PAGERANK_KEEP_RUNS', 2))
    keep = max(keep, 1)
    stale = list(
        PageRankRun.objects
        .filter(platform_id=platform_id, is_current=False)
        .order_by('-started_at', '-pk')
        .values_list('pk', flat=True)[keep - 1:]
    )
    if stale:
        PageRankRun.objects.filter(pk__in=stale).delete()


def current_run(platform_id: int) -> Optional[PageRankRun]:
    return PageRankRun.objects.filter(platform_id=platform_id, is_current=True).first()


def current_scores(platform_id: int) -> Dict[int, float]:
    """Map node id to score for the platform's current run."""

    return dict(
        PageRankScore.objects
        .filter(platform_id=platform_id, run__is_current=True)
        .values_list('node_id', 'score')
    )


def identify_high_value_pages(platform_id: int, limit: int = 10) -> List[Dict[str, object]]:
    return _ranked_pages(platform_id, limit, descending=True)


def identify_low_value_pages(platform_id: int, limit: int = 10) -> List[Dict[str, object]]:
    return _ranked_pages(platform_id, limit, descending=False)


def _ranked_pages(platform_id: int, limit: int, *, descending: bool) -> List[Dict[str, object]]:
    get_platform(platform_id)
    order = ('-score', 'node_id') if descending else ('score', 'node_id')
    rows = (
        PageRankScore.objects
        .filter(platform_id=platform_id, run__is_current=True)
        .select_related('node')
        .order_by(*order)[:limit]
    )
    return [
        {
            'node_id': row.node_id,
            'title': row.node.title,
            'score': row.score,
            'computed_at': row.computed_at.isoformat(),
        }
        for row in rows
    ]


def summary(platform_id: int) -> Optional[Dict[str, object]]:
    """Statistics of the current run, or ``None`` before the first run."""

    run = current_run(platform_id)
    if run is None:
        return None
    scores = list(run.scores.values_list('score', flat=True))
    return {
        'run_id': run.pk,
        'computed_at': run.completed_at.isoformat() if run.completed_at else None,
        'iterations': run.iterations,
        'converged': run.converged,
        'node_count': run.node_count,
        'max': max(scores) if scores else 0.0,
        'min': min(scores) if scores else 0.0,
        'mean': sum(scores) / len(scores) if scores else 0.0,
    }


def optimize_link_flow(platform_id: int) -> Dict[str, object]:
    """Recommend edge changes that spread the current run's PageRank better.

    Scores are normalized by the run's node count so an average page scores
    100. Well-ranked pages with few outbound edges should pass more of their
    score on, poorly ranked pages with many outbound edges dilute it, and
    pillars with few inbound edges need more links from their children.
    """

    get_platform(platform_id)
    run = current_run(platform_id)
    if run is None or not run.node_count:
        return {'platform_id': platform_id, 'run_id': None, 'average_score': 0.0, 'recommendations': []}

    scores = current_scores(platform_id)
    scale = run.node_count * 100
    nodes = with_degrees(published_nodes(platform_id).filter(pk__in=list(scores))).order_by('pk')

    recommendations: List[Dict[str, object]] = []
    normalized_scores: List[float] = []
    for node in nodes:
        normalized = round(scores[node.pk] * scale, 2)
        normalized_scores.append(normalized)
        if normalized > HIGH_SCORE and node.outbound < HIGH_SCORE_MIN_OUTBOUND:
            recommendations.append(_flow_item(
                'add_outbound_links', 'high', node, normalized,
                f'Score {normalized} with only {node.outbound} outbound links; link out to spread it.',
            ))
        if normalized < LOW_SCORE and node.outbound > LOW_SCORE_MAX_OUTBOUND:
            recommendations.append(_flow_item(
                'reduce_outbound_links', 'medium', node, normalized,
                f'Score {normalized} split over {node.outbound} outbound links; fewer links would concentrate it.',
            ))
        if node.node_type == NodeType.PILLAR.value and node.inbound < PILLAR_MIN_INBOUND:
            recommendations.append(_flow_item(
                'boost_pillar', 'high', node, normalized,
                f'Pillar has only {node.inbound} inbound links; link to it from its children.',
            ))

    recommendations.sort(key=lambda item: PRIORITY_ORDER[item['priority']])
    return {
        'platform_id': platform_id,
        'run_id': run.pk,
        'average_score': round(sum(normalized_scores) / len(normalized_scores), 2) if normalized_scores else 0.0,
        'recommendations': recommendations,
    }


def _flow_item(kind: str, priority: str, node, normalized: float, message: str) -> Dict[str, object]:
    return {
        'type': kind,
        'priority': priority,
        'node_id': node.pk,
        'title': node.title,
        'score': normalized,
        'inbound_links': node.inbound,
        'outbound_links': node.outbound,
        'message': message,
    }

"""Power-method PageRank over the internal link graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class PageRankResult:
    scores: Dict[int, float]
    iterations: int
    converged: bool
    delta: float


def compute_pagerank(
    node_ids: Sequence[int],
    edges: Iterable[Tuple[int, int]],
    *,
    damping: float = 0.85,
    tolerance: float = 1e-6,
    max_iterations: int = 100,
) -> PageRankResult:
    """Compute PageRank scores for ``node_ids``.

    ``edges`` are ``(source, target)`` pairs. Self-loops, duplicate pairs and
    edges touching nodes outside ``node_ids`` are ignored. The score of nodes
    without outbound links is spread uniformly over every node so the total
    mass stays at 1. Iteration stops when the L1 change drops below
    ``tolerance`` or after ``max_iterations`` passes; the scores of the last
    pass are returned either way.
    """

    nodes = list(dict.fromkeys(node_ids))
    count = len(nodes)
    if count == 0:
        return PageRankResult(scores={}, iterations=0, converged=True, delta=0.0)

    members = set(nodes)
    outbound: Dict[int, List[int]] = {node: [] for node in nodes}
    seen = set()
    for source, target in edges:
        if source == target or source not in members or target not in members:
            continue
        if (source, target) in seen:
            continue
        seen.add((source, target))
        outbound[source].append(target)

    dangling = [node for node in nodes if not outbound[node]]
    scores = {node: 1.0 / count for node in nodes}
    base = (1.0 - damping) / count

    iterations = 0
    delta = float("inf")
    converged = False
    while iterations < max_iterations:
        iterations += 1
        dangling_share = damping * sum(scores[node] for node in dangling) / count
        updated = {node: base + dangling_share for node in nodes}
        for source, targets in outbound.items():
            if not targets:
                continue
            share = damping * scores[source] / len(targets)
            for target in targets:
                updated[target] += share

        delta = sum(abs(updated[node] - scores[node]) for node in nodes)
        scores = updated
        if delta < tolerance:
            converged = True
            break

    return PageRankResult(scores=scores, iterations=iterations, converged=converged, delta=delta)

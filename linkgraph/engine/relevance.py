"""Relevance scoring and ranking of internal link candidates."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from .config import EngineConfig
from .context import CorpusContext
from .text import cosine_similarity, jaccard
from .types import Domain, Node, NodeType, ResolvedRule, ScoredCandidate, SourceType


def compute_features(source: Node, target: Node, context: CorpusContext) -> Dict[str, float]:
    """Return the per-feature fit of ``target`` for ``source``, each in [0, 1]."""

    return {
        "theme": jaccard(_normalized(source.themes), _normalized(target.themes)),
        "text": cosine_similarity(
            context.vectors.get(source.id, {}),
            context.vectors.get(target.id, {}),
        ),
        "country": _country_match(source, target),
        "language": 1.0 if source.language == target.language else 0.0,
        "type": type_compatibility(source, target),
    }


def score_candidate(features: Dict[str, float], config: EngineConfig) -> float:
    """Return a composite relevance score in [0, 100]."""

    total = 0.0
    for name, value in features.items():
        total += config.relevance_weight(name) * value
    return round(max(0.0, min(total, 100.0)), 2)


def type_compatibility(source: Node, target: Node) -> float:
    if source.type != NodeType.PILLAR and target.type == NodeType.PILLAR:
        return 1.0 if source.pillar_id == target.id else 0.7
    if source.type == NodeType.PILLAR and target.pillar_id == source.id:
        return 1.0
    if source.type == target.type:
        return 0.5
    return 0.3


def rank_candidates(
    source: Node,
    pool: Sequence[Node],
    context: CorpusContext,
    config: EngineConfig,
    rule: ResolvedRule,
    *,
    needed: int,
    exclude_ids: Iterable[int] = (),
) -> List[ScoredCandidate]:
    """Return qualifying candidates ordered best first.

    Candidates scoring below ``rule.min_relevance_score`` are dropped. Ties on
    score go to the higher PageRank, then to the target with fewer inbound
    links. Other-language targets are only appended when the rule allows
    cross-language fallback and same-language targets cannot fill ``needed``.
    """

    excluded = set(exclude_ids)
    excluded.add(source.id)

    same_language: List[ScoredCandidate] = []
    other_language: List[ScoredCandidate] = []
    for target in pool:
        if target.id in excluded or target.platform_id != source.platform_id:
            continue
        features = compute_features(source, target, context)
        score = score_candidate(features, config)
        if score < rule.min_relevance_score:
            continue
        cross = target.language != source.language
        candidate = ScoredCandidate(
            node=target,
            score=score,
            pagerank=context.pagerank.get(target.id, 0.0),
            inbound=context.inbound.get(target.id, 0),
            cross_language=cross,
        )
        (other_language if cross else same_language).append(candidate)

    same_language.sort(key=_rank_key)
    if len(same_language) >= needed or not rule.allow_cross_language:
        return same_language
    other_language.sort(key=_rank_key)
    return same_language + other_language


def score_reason(features: Dict[str, float], config: EngineConfig, top_k: int = 2) -> str:
    """Return a human-friendly reason summary based on top weighted features."""

    weighted = []
    for name, value in features.items():
        weight = config.relevance_weight(name)
        if weight > 0 and value > 0:
            weighted.append((weight * value, name, value))
    weighted.sort(reverse=True)

    fragments = [_reason_fragment(name, value) for _, name, value in weighted[:top_k]]
    return "; ".join(fragment for fragment in fragments if fragment)


def _reason_fragment(name: str, value: float) -> str:
    mapping = {
        "theme": "theme overlap",
        "text": "content similarity",
        "country": "same country",
        "language": "same language",
        "type": "pillar hierarchy",
    }
    descriptor = mapping.get(name)
    if not descriptor:
        return ""
    if value >= 0.85:
        qualifier = "excellent"
    elif value >= 0.6:
        qualifier = "strong"
    else:
        qualifier = "good"
    return f"{qualifier} {descriptor}"


def _rank_key(candidate: ScoredCandidate):
    return (-candidate.score, -candidate.pagerank, candidate.inbound, candidate.node.id)


def _country_match(source: Node, target: Node) -> float:
    if not source.country or not target.country:
        return 0.5
    return 1.0 if source.country.lower() == target.country.lower() else 0.0


def _normalized(themes: Iterable[str]) -> List[str]:
    return [str(theme).strip().lower() for theme in themes if str(theme).strip()]


def domain_applicable(domain: Domain, source: Node, rule: ResolvedRule) -> bool:
    """Return ``True`` when an authority domain may be cited from ``source``."""

    if domain.broken or domain.authority_score < rule.min_authority_score:
        return False
    if domain.country and source.country and domain.country.lower() != source.country.lower():
        return False
    if domain.country and not source.country:
        return False
    if domain.languages and source.language not in domain.languages:
        return False
    if domain.themes and not set(_normalized(domain.themes)) & set(_normalized(source.themes)):
        return False
    return True


def select_domains(
    source: Node,
    domains: Sequence[Domain],
    rule: ResolvedRule,
    *,
    needed: int,
    exclude_ids: Iterable[int] = (),
) -> List[Domain]:
    """Pick up to ``needed`` domains following the rule's source priority.

    Each source type is drained before falling through to the next one.
    Within a type, domains matching more of the node's themes come first,
    then higher authority, then a national domain over an international one.
    """

    if needed <= 0:
        return []
    excluded = set(exclude_ids)
    themes = set(_normalized(source.themes))
    usable = [
        domain
        for domain in domains
        if domain.id not in excluded and domain_applicable(domain, source, rule)
    ]

    priority = list(rule.source_priority)
    if rule.require_government and SourceType.GOVERNMENT in priority:
        priority.remove(SourceType.GOVERNMENT)
        priority.insert(0, SourceType.GOVERNMENT)

    selected: List[Domain] = []
    for source_type in priority:
        bucket = [domain for domain in usable if domain.source_type == source_type]
        bucket.sort(key=lambda domain: (
            -len(themes & set(_normalized(domain.themes))),
            -domain.authority_score,
            0 if domain.country else 1,
            domain.id,
        ))
        for domain in bucket:
            if len(selected) >= needed:
                return selected
            selected.append(domain)
    return selected

"""Linking rule validation, resolution and compliance checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .types import AnchorCategory, NodeType, ResolvedRule, SourceType, Violation

_PAIRED_BOUNDS = (
    ("min_internal_links", "max_internal_links"),
    ("min_external_links", "max_external_links"),
)

_COUNT_FIELDS = (
    "min_internal_links",
    "max_internal_links",
    "min_external_links",
    "max_external_links",
    "max_affiliate_links",
    "max_pillar_children",
)

_SCORE_FIELDS = ("min_relevance_score", "min_authority_score")

_BOOL_FIELDS = (
    "require_government",
    "exclude_intro",
    "exclude_conclusion",
    "require_pillar_link",
    "allow_cross_language",
)


def validate_rule(data: Mapping[str, Any]) -> List[str]:
    """Return the list of violated invariants for a (partial) rule payload.

    Only the fields present in ``data`` are checked, so a stored rule with
    unset fields validates the same way it will later be resolved.
    """

    errors: List[str] = []

    for name in _COUNT_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not _is_int(value):
            errors.append(f"{name} must be an integer.")
        elif value < 0:
            errors.append(f"{name} must be zero or greater.")

    for name in _SCORE_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not _is_int(value):
            errors.append(f"{name} must be an integer.")
        elif not 0 <= value <= 100:
            errors.append(f"{name} must be between 0 and 100.")

    for low, high in _PAIRED_BOUNDS:
        low_value, high_value = data.get(low), data.get(high)
        if _is_int(low_value) and _is_int(high_value) and low_value > high_value:
            errors.append(f"{low} ({low_value}) must not exceed {high} ({high_value}).")

    per_paragraph = data.get("max_links_per_paragraph")
    if per_paragraph is not None:
        if not _is_int(per_paragraph) or per_paragraph < 1:
            errors.append("max_links_per_paragraph must be an integer of at least 1.")

    for name in _BOOL_FIELDS:
        value = data.get(name)
        if value is not None and not isinstance(value, bool):
            errors.append(f"{name} must be a boolean.")

    distribution = data.get("anchor_distribution")
    if distribution is not None:
        errors.extend(_validate_distribution(distribution))

    priority = data.get("source_priority")
    if priority is not None:
        errors.extend(_validate_priority(priority))

    return errors


def _validate_distribution(distribution: Any) -> List[str]:
    if not isinstance(distribution, Mapping):
        return ["anchor_distribution must be a mapping of category to percentage."]

    errors: List[str] = []
    expected = {category.value for category in AnchorCategory}
    missing = sorted(expected - set(distribution))
    unknown = sorted(set(distribution) - expected)
    if missing:
        errors.append(f"anchor_distribution is missing: {', '.join(missing)}.")
    if unknown:
        errors.append(f"anchor_distribution has unknown categories: {', '.join(unknown)}.")

    values = list(distribution.values())
    if any(not _is_int(value) for value in values):
        errors.append("anchor_distribution percentages must be integers.")
        return errors
    if any(value < 0 for value in values):
        errors.append("anchor_distribution percentages must be zero or greater.")
    total = sum(values)
    if total != 100:
        errors.append(f"anchor_distribution must sum to 100 (got {total}).")
    return errors


def _validate_priority(priority: Any) -> List[str]:
    if not isinstance(priority, (list, tuple)):
        return ["source_priority must be a list of source types."]

    errors: List[str] = []
    valid = {item.value for item in SourceType}
    invalid = [str(item) for item in priority if item not in valid]
    if invalid:
        errors.append(f"source_priority has unknown source types: {', '.join(invalid)}.")
    if len(set(priority)) != len(priority):
        errors.append("source_priority entries must be unique.")
    return errors


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def resolve_rule(stored: Optional[Mapping[str, Any]], default: Mapping[str, Any]) -> ResolvedRule:
    """Merge a stored rule's set fields over the default rule."""

    merged: Dict[str, Any] = dict(default)
    is_default = stored is None
    for key, value in (stored or {}).items():
        if value is not None and key in merged:
            merged[key] = value

    distribution = {
        category: int(merged["anchor_distribution"].get(category.value, 0))
        for category in AnchorCategory
    }
    return ResolvedRule(
        min_internal_links=int(merged["min_internal_links"]),
        max_internal_links=int(merged["max_internal_links"]),
        min_relevance_score=int(merged["min_relevance_score"]),
        min_external_links=int(merged["min_external_links"]),
        max_external_links=int(merged["max_external_links"]),
        min_authority_score=int(merged["min_authority_score"]),
        require_government=bool(merged["require_government"]),
        max_affiliate_links=int(merged["max_affiliate_links"]),
        anchor_distribution=distribution,
        exclude_intro=bool(merged["exclude_intro"]),
        exclude_conclusion=bool(merged["exclude_conclusion"]),
        max_links_per_paragraph=int(merged["max_links_per_paragraph"]),
        source_priority=[SourceType(item) for item in merged["source_priority"]],
        max_pillar_children=int(merged["max_pillar_children"]),
        require_pillar_link=bool(merged["require_pillar_link"]),
        allow_cross_language=bool(merged.get("allow_cross_language", False)),
        is_default=is_default,
    )


def excluded_paragraphs(rule: ResolvedRule, paragraph_count: int) -> set:
    """Return the paragraph indexes that fall inside a flagged exclusion zone."""

    zones = set()
    if paragraph_count <= 0:
        return zones
    if rule.exclude_intro:
        zones.add(0)
    if rule.exclude_conclusion:
        zones.add(paragraph_count - 1)
    return zones


def allowed_paragraphs(
    rule: ResolvedRule,
    paragraph_count: int,
    occupancy: Mapping[int, int],
) -> List[int]:
    """Return paragraph indexes that may still receive a link, in document order."""

    zones = excluded_paragraphs(rule, paragraph_count)
    return [
        index
        for index in range(paragraph_count)
        if index not in zones and occupancy.get(index, 0) < rule.max_links_per_paragraph
    ]


def position_allowed(
    rule: ResolvedRule,
    paragraph_count: int,
    occupancy: Mapping[int, int],
    index: int,
) -> bool:
    """Reject, never relocate, a proposed insertion position."""

    return index in allowed_paragraphs(rule, paragraph_count, occupancy)


class AnchorTally:
    """Running anchor-category tally for one injection session.

    ``next_category`` picks the category whose share lags its target the most,
    so a long batch converges to the rule's distribution without forcing an
    exact mix on every article.
    """

    def __init__(self, distribution: Mapping[AnchorCategory, int]):
        self.distribution = {category: int(distribution.get(category, 0)) for category in AnchorCategory}
        self.counts: Dict[AnchorCategory, int] = {category: 0 for category in AnchorCategory}

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def deficit(self, category: AnchorCategory) -> float:
        return self.distribution[category] / 100.0 * (self.total + 1) - self.counts[category]

    def next_category(self) -> AnchorCategory:
        best = None
        best_deficit = None
        for category in AnchorCategory:
            value = self.deficit(category)
            if best_deficit is None or value > best_deficit + 1e-9:
                best, best_deficit = category, value
        return best

    def record(self, category: AnchorCategory) -> None:
        self.counts[category] += 1

    def shares(self) -> Dict[str, float]:
        total = self.total
        if not total:
            return {category.value: 0.0 for category in AnchorCategory}
        return {category.value: self.counts[category] / total for category in AnchorCategory}


@dataclass
class EdgeSummary:
    """Snapshot of one node's existing edges, as needed for compliance checks."""

    node_type: NodeType
    paragraph_count: int
    internal_paragraphs: List[Optional[int]] = field(default_factory=list)
    external_paragraphs: List[Optional[int]] = field(default_factory=list)
    external_scores: List[int] = field(default_factory=list)
    external_source_types: List[SourceType] = field(default_factory=list)
    external_broken: int = 0
    affiliate_paragraphs: List[Optional[int]] = field(default_factory=list)
    links_to_pillar: bool = False
    has_pillar: bool = False

    @property
    def internal_count(self) -> int:
        return len(self.internal_paragraphs)

    @property
    def external_count(self) -> int:
        return len(self.external_paragraphs)

    @property
    def affiliate_count(self) -> int:
        return len(self.affiliate_paragraphs)

    def occupancy(self) -> Dict[int, int]:
        return paragraph_occupancy(self.internal_paragraphs, self.external_paragraphs, self.affiliate_paragraphs)


def paragraph_occupancy(*positions: Iterable[Optional[int]]) -> Dict[int, int]:
    """Count links per paragraph across internal and external edges."""

    counts: Dict[int, int] = {}
    for group in positions:
        for index in group:
            if index is None:
                continue
            counts[index] = counts.get(index, 0) + 1
    return counts


def check_compliance(rule: ResolvedRule, summary: EdgeSummary) -> List[Violation]:
    """Re-evaluate a node's existing edges against the current rule."""

    violations: List[Violation] = []

    if summary.internal_count < rule.min_internal_links:
        violations.append(Violation(
            "internal_below_min",
            f"{summary.internal_count} internal links, minimum is {rule.min_internal_links}.",
        ))
    if summary.internal_count > rule.max_internal_links:
        violations.append(Violation(
            "internal_above_max",
            f"{summary.internal_count} internal links, maximum is {rule.max_internal_links}.",
        ))
    if summary.external_count < rule.min_external_links:
        violations.append(Violation(
            "external_below_min",
            f"{summary.external_count} external links, minimum is {rule.min_external_links}.",
        ))
    if summary.external_count > rule.max_external_links:
        violations.append(Violation(
            "external_above_max",
            f"{summary.external_count} external links, maximum is {rule.max_external_links}.",
        ))
    if summary.affiliate_count > rule.max_affiliate_links:
        violations.append(Violation(
            "affiliate_above_max",
            f"{summary.affiliate_count} affiliate links, maximum is {rule.max_affiliate_links}.",
        ))

    weak = [score for score in summary.external_scores if score < rule.min_authority_score]
    if weak:
        violations.append(Violation(
            "authority_below_min",
            f"{len(weak)} external links below authority {rule.min_authority_score}.",
        ))
    if rule.require_government and SourceType.GOVERNMENT not in summary.external_source_types:
        violations.append(Violation("government_missing", "No government source among external links."))
    if summary.external_broken:
        violations.append(Violation(
            "external_broken",
            f"{summary.external_broken} external links failed verification.",
        ))

    zones = excluded_paragraphs(rule, summary.paragraph_count)
    positions = [
        index
        for index in summary.internal_paragraphs + summary.external_paragraphs + summary.affiliate_paragraphs
        if index is not None
    ]
    in_zone = [index for index in positions if index in zones]
    if in_zone:
        violations.append(Violation(
            "exclusion_zone",
            f"{len(in_zone)} links placed in an excluded intro or conclusion paragraph.",
        ))
    crowded = sorted(index for index, count in summary.occupancy().items() if count > rule.max_links_per_paragraph)
    if crowded:
        violations.append(Violation(
            "paragraph_cap",
            f"Paragraphs {', '.join(str(i) for i in crowded)} exceed {rule.max_links_per_paragraph} links.",
        ))

    if rule.require_pillar_link and summary.node_type != NodeType.PILLAR and not summary.links_to_pillar:
        message = "No link to the designated pillar." if summary.has_pillar else "No pillar available to link to."
        violations.append(Violation("pillar_missing", message))

    return violations


def distribution_gap(rule: ResolvedRule, counts: Mapping[str, int]) -> Dict[str, Dict[str, float]]:
    """Return actual versus target share per anchor category."""

    total = sum(counts.values())
    report: Dict[str, Dict[str, float]] = {}
    for category in AnchorCategory:
        actual = counts.get(category.value, 0) / total * 100 if total else 0.0
        report[category.value] = {
            "target": float(rule.anchor_distribution[category]),
            "actual": round(actual, 2),
            "count": counts.get(category.value, 0),
        }
    return report


# Points deducted from a perfect health score of 100 per violation code.
HEALTH_PENALTIES: Dict[str, int] = {
    "internal_below_min": 20,
    "internal_above_max": 10,
    "external_below_min": 10,
    "external_above_max": 5,
    "affiliate_above_max": 5,
    "authority_below_min": 5,
    "government_missing": 5,
    "exclusion_zone": 5,
    "paragraph_cap": 5,
    "pillar_missing": 15,
}
ORPHAN_PENALTY = 30
BROKEN_LINK_PENALTY = 5

GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def health_score(violations: Iterable[Violation], *, broken_links: int = 0, orphan: bool = False) -> int:
    """Score a node's linking health from 0 to 100.

    Each violation costs its :data:`HEALTH_PENALTIES` weight, every broken
    external link costs :data:`BROKEN_LINK_PENALTY` and a node nothing links
    to costs :data:`ORPHAN_PENALTY`.
    """

    score = 100
    score -= sum(HEALTH_PENALTIES.get(violation.code, 0) for violation in violations)
    score -= BROKEN_LINK_PENALTY * broken_links
    if orphan:
        score -= ORPHAN_PENALTY
    return max(score, 0)


def health_grade(score: int) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"

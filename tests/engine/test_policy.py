from linkgraph.engine.config import DEFAULT_LINKING_RULE
from linkgraph.engine.policy import (
    AnchorTally,
    EdgeSummary,
    allowed_paragraphs,
    check_compliance,
    distribution_gap,
    health_grade,
    health_score,
    position_allowed,
    resolve_rule,
    validate_rule,
)
from linkgraph.engine.types import AnchorCategory, NodeType, SourceType, Violation

from .conftest import make_rule


def test_default_rule_is_valid():
    assert validate_rule(DEFAULT_LINKING_RULE) == []


def test_inverted_bounds_are_rejected():
    errors = validate_rule({"min_internal_links": 9, "max_internal_links": 2})

    assert errors == ["min_internal_links (9) must not exceed max_internal_links (2)."]


def test_distribution_must_cover_all_categories_and_sum_to_100():
    errors = validate_rule({"anchor_distribution": {"exact_match": 50, "generic": 40, "promo": 5}})

    assert any("missing" in error for error in errors)
    assert any("unknown categories: promo" in error for error in errors)
    assert any("sum to 100 (got 95)" in error for error in errors)


def test_field_types_are_checked():
    errors = validate_rule({
        "max_links_per_paragraph": 0,
        "require_government": "yes",
        "min_relevance_score": 120,
        "max_affiliate_links": True,
        "source_priority": ["government", "blog", "government"],
    })

    assert "max_links_per_paragraph must be an integer of at least 1." in errors
    assert "require_government must be a boolean." in errors
    assert "min_relevance_score must be between 0 and 100." in errors
    assert "max_affiliate_links must be an integer." in errors
    assert "source_priority has unknown source types: blog." in errors
    assert "source_priority entries must be unique." in errors


def test_stored_fields_override_the_default():
    default = resolve_rule(None, DEFAULT_LINKING_RULE)
    stored = resolve_rule({"max_internal_links": 5, "min_external_links": None}, DEFAULT_LINKING_RULE)

    assert default.is_default
    assert not stored.is_default
    assert stored.max_internal_links == 5
    assert stored.min_external_links == DEFAULT_LINKING_RULE["min_external_links"]
    assert stored.source_priority[0] == SourceType.GOVERNMENT


def test_tally_follows_the_distribution_over_a_batch():
    distribution = {
        AnchorCategory.EXACT_MATCH: 40,
        AnchorCategory.LONG_TAIL: 30,
        AnchorCategory.GENERIC: 20,
        AnchorCategory.CTA: 5,
        AnchorCategory.QUESTION: 5,
    }
    tally = AnchorTally(distribution)

    for _ in range(15):
        tally.record(tally.next_category())

    assert tally.counts == {
        AnchorCategory.EXACT_MATCH: 6,
        AnchorCategory.LONG_TAIL: 4,
        AnchorCategory.GENERIC: 3,
        AnchorCategory.CTA: 1,
        AnchorCategory.QUESTION: 1,
    }
    for category, share in tally.shares().items():
        assert abs(share * 100 - distribution[AnchorCategory(category)]) <= 10


def test_tally_ties_follow_category_order():
    tally = AnchorTally({category: 20 for category in AnchorCategory})

    first = tally.next_category()
    tally.record(first)

    assert first == AnchorCategory.EXACT_MATCH
    assert tally.next_category() == AnchorCategory.LONG_TAIL


def test_new_tally_starts_empty():
    tally = AnchorTally(make_rule().anchor_distribution)

    assert tally.total == 0
    assert tally.next_category() == AnchorCategory.EXACT_MATCH
    tally.record(AnchorCategory.CTA)
    assert tally.total == 1


def test_exclusion_zones_and_paragraph_cap():
    rule = make_rule()

    assert allowed_paragraphs(rule, 6, {2: 1}) == [1, 3, 4]
    assert not position_allowed(rule, 6, {}, 0)
    assert not position_allowed(rule, 6, {}, 5)
    assert position_allowed(make_rule(exclude_intro=False), 6, {}, 0)


def test_compliant_node_has_no_violations():
    summary = EdgeSummary(
        node_type=NodeType.STANDARD,
        paragraph_count=6,
        internal_paragraphs=[1, 2, 3],
        external_paragraphs=[4],
        external_scores=[80],
        external_source_types=[SourceType.GOVERNMENT],
        links_to_pillar=True,
        has_pillar=True,
    )

    assert check_compliance(make_rule(), summary) == []


def test_violations_are_reported_by_code():
    summary = EdgeSummary(
        node_type=NodeType.STANDARD,
        paragraph_count=6,
        internal_paragraphs=[0, 2, 2],
        external_paragraphs=[3],
        external_scores=[30],
        external_source_types=[SourceType.NEWS],
        external_broken=1,
        affiliate_paragraphs=[4, None, None],
    )

    codes = [violation.code for violation in check_compliance(make_rule(), summary)]

    assert codes == [
        "affiliate_above_max",
        "authority_below_min",
        "government_missing",
        "external_broken",
        "exclusion_zone",
        "paragraph_cap",
        "pillar_missing",
    ]


def test_pillars_do_not_need_a_pillar_link():
    summary = EdgeSummary(node_type=NodeType.PILLAR, paragraph_count=3)

    codes = [violation.code for violation in check_compliance(make_rule(), summary)]

    assert "pillar_missing" not in codes


def test_government_source_is_required_without_external_links():
    summary = EdgeSummary(node_type=NodeType.STANDARD, paragraph_count=6)

    codes = [violation.code for violation in check_compliance(make_rule(), summary)]
    relaxed = [violation.code for violation in check_compliance(make_rule(require_government=False), summary)]

    assert "government_missing" in codes
    assert "government_missing" not in relaxed


def test_distribution_gap_reports_shares():
    gap = distribution_gap(make_rule(), {"exact_match": 3, "generic": 1})

    assert gap["exact_match"] == {"target": 30.0, "actual": 75.0, "count": 3}
    assert gap["question"]["actual"] == 0.0


def test_health_score_deducts_per_violation():
    violations = [Violation("internal_below_min", ""), Violation("external_below_min", ""), Violation("external_broken", "")]

    assert health_score([]) == 100
    assert health_score(violations) == 70
    assert health_score(violations, broken_links=2, orphan=True) == 30
    assert health_score(violations * 4, orphan=True) == 0


def test_health_grade_boundaries():
    assert [health_grade(score) for score in (100, 90, 89, 80, 75, 60, 59, 0)] == ["A", "A", "B", "B", "C", "D", "F", "F"]

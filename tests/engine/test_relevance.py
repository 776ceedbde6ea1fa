from linkgraph.engine.context import build_corpus_context
from linkgraph.engine.relevance import (
    compute_features,
    rank_candidates,
    score_candidate,
    score_reason,
    select_domains,
)
from linkgraph.engine.types import Domain, NodeType, SourceType

from .conftest import make_node, make_rule


def _domain(domain_id, source_type, *, score=80, country=None, themes=(), broken=False):
    return Domain(
        id=domain_id,
        domain=f"site-{domain_id}.example",
        name=f"Site {domain_id}",
        source_type=source_type,
        authority_score=score,
        country=country,
        themes=list(themes),
        broken=broken,
    )


def test_child_to_pillar_scores_full_marks(engine_config):
    pillar = make_node(10, "Working visas", "work visa permit application", themes=["visa"], type=NodeType.PILLAR)
    child = make_node(1, "Working visas", "work visa permit application", themes=["visa"], pillar_id=10)
    context = build_corpus_context([pillar, child])

    features = compute_features(child, pillar, context)

    assert features["theme"] == 1.0
    assert features["type"] == 1.0
    assert score_candidate(features, engine_config) == 100.0


def test_unrelated_target_is_filtered_by_min_relevance(engine_config):
    source = make_node(1, "Visa application", themes=["visa"])
    unrelated = make_node(2, "Cheese recipes", themes=["food"], country="it", language="it")
    context = build_corpus_context([source, unrelated])

    ranked = rank_candidates(source, [unrelated], context, engine_config, make_rule(), needed=3)

    assert ranked == []


def test_ties_prefer_pagerank_then_fewer_inbound(engine_config):
    source = make_node(1, "Student visa", "student visa paperwork", themes=["visa"])
    targets = [make_node(node_id, "Visa paperwork", "visa paperwork checklist", themes=["visa"]) for node_id in (2, 3, 4)]
    context = build_corpus_context(
        [source, *targets],
        pagerank={2: 0.1, 3: 0.3, 4: 0.3},
        inbound={3: 5, 4: 1},
    )

    ranked = rank_candidates(source, targets, context, engine_config, make_rule(min_relevance_score=0), needed=3)

    assert [candidate.node.id for candidate in ranked] == [4, 3, 2]
    assert len({candidate.score for candidate in ranked}) == 1


def test_source_and_other_platforms_never_rank(engine_config):
    source = make_node(1, "Visa guide", themes=["visa"])
    foreign = make_node(2, "Visa guide", themes=["visa"], platform_id=2)
    context = build_corpus_context([source, foreign])

    ranked = rank_candidates(source, [source, foreign], context, engine_config, make_rule(min_relevance_score=0), needed=2)

    assert ranked == []


def test_cross_language_only_as_fallback(engine_config):
    source = make_node(1, "Visa guide", themes=["visa"])
    english = make_node(2, "Visa checklist", themes=["visa"])
    french = make_node(3, "Guide visa", themes=["visa"], language="fr")
    context = build_corpus_context([source, english, french])

    strict = rank_candidates(source, [english, french], context, engine_config, make_rule(min_relevance_score=0), needed=2)
    relaxed = rank_candidates(
        source,
        [english, french],
        context,
        engine_config,
        make_rule(min_relevance_score=0, allow_cross_language=True),
        needed=2,
    )

    assert [candidate.node.id for candidate in strict] == [2]
    assert [candidate.node.id for candidate in relaxed] == [2, 3]
    assert relaxed[1].cross_language


def test_score_reason_names_the_strongest_features(engine_config):
    features = {"theme": 1.0, "text": 0.2, "country": 1.0, "language": 1.0, "type": 0.5}

    reason = score_reason(features, engine_config)

    assert reason.startswith("excellent theme overlap")


def test_government_sources_come_first_when_required():
    source = make_node(1, "Visa guide", themes=["visa"])
    domains = [
        _domain(1, SourceType.ORGANIZATION, score=95),
        _domain(2, SourceType.GOVERNMENT, score=70),
        _domain(3, SourceType.NEWS, score=90),
    ]
    rule = make_rule(source_priority=["organization", "news", "government", "reference", "authority"])

    picked = select_domains(source, domains, rule, needed=2)

    assert [domain.id for domain in picked] == [2, 1]


def test_broken_weak_and_foreign_domains_are_skipped():
    source = make_node(1, "Visa guide", themes=["visa"], country="fr")
    domains = [
        _domain(1, SourceType.GOVERNMENT, broken=True),
        _domain(2, SourceType.GOVERNMENT, score=20),
        _domain(3, SourceType.GOVERNMENT, country="de"),
        _domain(4, SourceType.REFERENCE, themes=["cooking"]),
        _domain(5, SourceType.REFERENCE, country="fr", themes=["visa"]),
    ]

    picked = select_domains(source, domains, make_rule(), needed=4)

    assert [domain.id for domain in picked] == [5]

from linkgraph.engine.anchors import build_anchor, external_anchor
from linkgraph.engine.types import AnchorCategory, Domain, SourceType

from .conftest import make_node


def test_exact_match_uses_the_target_title(engine_config):
    source = make_node(1, "Visa guide")
    target = make_node(2, "  Student   visas ")

    anchor = build_anchor(AnchorCategory.EXACT_MATCH, source, target, engine_config.anchor_templates)

    assert anchor == "Student visas"


def test_templates_follow_the_source_language(engine_config):
    source = make_node(1, "Guide visa", language="fr")
    target = make_node(2, "Visa étudiant")
    options = engine_config.anchor_templates["fr"]["long_tail"]

    anchor = build_anchor(AnchorCategory.LONG_TAIL, source, target, engine_config.anchor_templates)

    assert anchor in [option.format(title="visa étudiant") for option in options]


def test_unknown_language_falls_back_to_english(engine_config):
    source = make_node(1, "Guida visti", language="it")
    target = make_node(2, "VAT refunds")
    options = engine_config.anchor_templates["en"]["cta"]

    anchor = build_anchor(AnchorCategory.CTA, source, target, engine_config.anchor_templates)

    assert anchor in [option.format(title="VAT refunds") for option in options]


def test_anchor_choice_is_stable(engine_config):
    source = make_node(1, "Visa guide")
    target = make_node(2, "Work permits")

    first = build_anchor(AnchorCategory.QUESTION, source, target, engine_config.anchor_templates)
    second = build_anchor(AnchorCategory.QUESTION, source, target, engine_config.anchor_templates)

    assert first == second


def test_external_anchor_prefers_the_name():
    domain = Domain(1, "service-public.fr", "Service Public", SourceType.GOVERNMENT, 90, "fr")

    assert external_anchor(domain) == "Service Public"
    assert external_anchor(Domain(2, "example.org", "", SourceType.NEWS, 70, None)) == "example.org"

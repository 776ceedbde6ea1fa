"""Shared fixtures for engine tests."""

from __future__ import annotations

from typing import Any, Iterable

import pytest

from linkgraph.engine.config import DEFAULT_LINKING_RULE, load_config
from linkgraph.engine.policy import resolve_rule
from linkgraph.engine.types import Node, NodeType, ResolvedRule


@pytest.fixture()
def engine_config():
    """Provide a mutable copy of the default engine configuration."""

    return load_config(None)


def make_node(
    node_id: int,
    title: str,
    text: str = "",
    *,
    platform_id: int = 1,
    country: str | None = "fr",
    language: str = "en",
    themes: Iterable[str] | None = None,
    type: NodeType = NodeType.STANDARD,
    pillar_id: int | None = None,
) -> Node:
    return Node(
        id=node_id,
        platform_id=platform_id,
        title=title,
        text=text or title,
        country=country,
        language=language,
        themes=list(themes or []),
        type=type,
        pillar_id=pillar_id,
        url=f"/node-{node_id}/",
    )


def make_rule(**overrides: Any) -> ResolvedRule:
    return resolve_rule(overrides, DEFAULT_LINKING_RULE)

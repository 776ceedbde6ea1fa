"""Corpus-level context shared across scoring stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Sequence

from .text import document_frequencies, term_frequencies, tfidf_vector, tokenize
from .types import Node


@dataclass(frozen=True)
class CorpusContext:
    """Precomputed TF-IDF vectors and graph statistics for one platform."""

    vectors: Dict[int, Dict[str, float]]
    node_map: Dict[int, Node]
    pagerank: Dict[int, float] = field(default_factory=dict)
    inbound: Dict[int, int] = field(default_factory=dict)


def build_corpus_context(
    corpus: Sequence[Node],
    *,
    pagerank: Dict[int, float] | None = None,
    inbound: Dict[int, int] | None = None,
) -> CorpusContext:
    """Build TF-IDF vectors over title, themes and body for every node."""

    counters = {}
    for node in corpus:
        tokens = tokenize(node.title) * 2 + tokenize(" ".join(node.themes)) + tokenize(node.text)
        counters[node.id] = term_frequencies(tokens)

    df = document_frequencies(list(counters.values())) if counters else {}
    total_docs = len(counters) or 1
    vectors = {node_id: tfidf_vector(tf, df, total_docs) for node_id, tf in counters.items()}

    return CorpusContext(
        vectors=vectors,
        node_map={node.id: node for node in corpus},
        pagerank=dict(pagerank or {}),
        inbound=dict(inbound or {}),
    )

"""Shared text utilities for the linking engine."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, Iterable, List, Sequence

from bs4 import BeautifulSoup  # type: ignore

_TOKEN_RE = re.compile(r"[\w']+")

_STOPWORDS = {
    # en
    "the", "and", "or", "to", "of", "a", "in", "for", "on", "with", "at", "by",
    "an", "be", "is", "are", "it", "this", "that", "your", "you", "how", "what",
    # fr
    "le", "la", "les", "de", "des", "du", "un", "une", "et", "en", "pour", "dans",
    "sur", "au", "aux", "est", "vous", "votre",
    # es / de
    "el", "los", "las", "del", "por", "con", "una", "der", "die", "das", "und", "ein",
}


def tokenize(text: str) -> List[str]:
    """Return lower-cased word tokens without stopwords or single letters."""

    return [
        token
        for token in (raw.lower() for raw in _TOKEN_RE.findall(text))
        if len(token) > 1 and token not in _STOPWORDS
    ]


def html_to_text(html: str) -> str:
    """Return the visible text of an HTML fragment."""

    if not html:
        return ""
    soup = make_soup(html)
    return re.sub(r"\s+", " ", soup.get_text(" ")).strip()


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def term_frequencies(tokens: Iterable[str]) -> Counter[str]:
    """Return term frequencies for the tokens."""

    return Counter(tokens)


def document_frequencies(documents: Sequence[Counter[str]]) -> Dict[str, int]:
    """Compute document frequencies for the token counters."""

    counts: Counter[str] = Counter()
    for doc in documents:
        counts.update(doc.keys())
    return dict(counts)


def tfidf_vector(tf: Counter[str], df: Dict[str, int], total_docs: int) -> Dict[str, float]:
    """Weight raw term frequencies by smoothed inverse document frequency."""

    vector: Dict[str, float] = {}
    for term, freq in tf.items():
        idf = math.log((1 + total_docs) / (1 + df.get(term, 0))) + 1.0
        vector[term] = freq * idf
    return vector


def cosine_similarity(vector_a: Dict[str, float], vector_b: Dict[str, float]) -> float:
    """Cosine similarity between two sparse weighted vectors."""

    if not vector_a or not vector_b:
        return 0.0
    dot = sum(weight * vector_b.get(term, 0.0) for term, weight in vector_a.items())
    norm_a = math.sqrt(sum(value * value for value in vector_a.values()))
    norm_b = math.sqrt(sum(value * value for value in vector_b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def jaccard(set_a: Iterable[str], set_b: Iterable[str]) -> float:
    """Return Jaccard similarity for two iterables."""

    left, right = set(set_a), set(set_b)
    union = left | right
    return len(left & right) / len(union) if union else 0.0

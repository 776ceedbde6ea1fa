"""Paragraph segmentation and link position selection."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from .policy import allowed_paragraphs
from .text import make_soup
from .types import ResolvedRule

PARAGRAPH_TAG = "p"


def paragraph_texts(html: str) -> List[str]:
    """Return the visible text of every paragraph, in document order."""

    if not html:
        return []
    soup = make_soup(html)
    return [block.get_text(" ", strip=True) for block in soup.find_all(PARAGRAPH_TAG)]


def short_paragraphs(texts: Sequence[str], min_words: int) -> List[int]:
    """Indexes of paragraphs too short to carry a link."""

    if min_words <= 0:
        return []
    return [index for index, text in enumerate(texts) if len(text.split()) < min_words]


def spread(indexes: Sequence[int], count: int) -> List[int]:
    """Pick ``count`` indexes spread evenly across the available ones."""

    if count <= 0 or not indexes:
        return []
    if count >= len(indexes):
        return list(indexes)
    step = len(indexes) / count
    return [indexes[int(i * step)] for i in range(count)]


def choose_positions(
    rule: ResolvedRule,
    paragraph_count: int,
    occupancy: Mapping[int, int],
    count: int,
    *,
    skip: Sequence[int] = (),
) -> List[int]:
    """Choose up to ``count`` paragraph indexes for new links.

    Least occupied paragraphs are filled first and picks are spread across
    the body. Fewer than ``count`` positions are returned when the exclusion
    zones and the per-paragraph cap leave no room.
    """

    taken: Dict[int, int] = dict(occupancy)
    blocked = set(skip)
    chosen: List[int] = []
    while len(chosen) < count:
        available = [
            index
            for index in allowed_paragraphs(rule, paragraph_count, taken)
            if index not in blocked
        ]
        if not available:
            break
        lowest = min(taken.get(index, 0) for index in available)
        tier = [index for index in available if taken.get(index, 0) == lowest]
        for index in spread(tier, count - len(chosen)):
            chosen.append(index)
            taken[index] = taken.get(index, 0) + 1
    return chosen

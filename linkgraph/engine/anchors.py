"""Anchor text generation per anchor category."""

from __future__ import annotations

import re
import zlib
from typing import Dict, List

from .types import AnchorCategory, Domain, Node

FALLBACK_LANGUAGE = "en"


def build_anchor(
    category: AnchorCategory,
    source: Node,
    target: Node,
    templates: Dict[str, Dict[str, List[str]]],
) -> str:
    """Return the anchor text for a link from ``source`` to ``target``.

    Exact-match anchors use the target title. Other categories use the
    localized templates of the source language, falling back to English.
    The template is picked deterministically from the node pair so repeated
    planning yields the same text.
    """

    title = _clean(target.title)
    if category == AnchorCategory.EXACT_MATCH:
        return title

    language = (source.language or FALLBACK_LANGUAGE).lower()
    options = templates.get(language, {}).get(category.value)
    if not options:
        options = templates.get(FALLBACK_LANGUAGE, {}).get(category.value)
    if not options:
        return title

    key = f"{source.id}:{target.id}:{category.value}".encode("utf-8")
    template = options[zlib.crc32(key) % len(options)]
    return _clean(template.format(title=_lower_first(title)))


def external_anchor(domain: Domain) -> str:
    return _clean(domain.name) or domain.domain


def _lower_first(title: str) -> str:
    # Keep acronyms such as "VAT" intact.
    if len(title) > 1 and title[0].isupper() and title[1].islower():
        return title[0].lower() + title[1:]
    return title


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())

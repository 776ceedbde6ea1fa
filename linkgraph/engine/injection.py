"""Embedding anchors into paragraph-segmented HTML content."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString  # type: ignore

from .placement import PARAGRAPH_TAG
from .text import make_soup

# Tags inside which links should never be inserted
SKIP_TAGS: set[str] = {"a", "code", "pre", "h1", "h2", "h3"}

# Word boundary regex template used when compiling matchers for anchor phrases
WORD_BOUNDARY = r"(?<![\w]){term}(?![\w])"

AUTO_ORIGIN = "automatic"


@dataclass(frozen=True)
class LinkSpec:
    """One anchor to place at a paragraph index."""

    paragraph_index: int
    href: str
    anchor_text: str
    css_class: str
    attrs: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PlacedLink:
    """Outcome of placing one :class:`LinkSpec`."""

    spec: LinkSpec
    embedded: bool
    context: Optional[str] = None


def inject_links(html: str, specs: Sequence[LinkSpec]) -> Tuple[str, List[PlacedLink]]:
    """Insert anchors into their paragraphs and return the enriched HTML.

    An anchor wraps the first case-insensitive occurrence of its text in the
    paragraph when one exists outside headings, code and existing anchors.
    Otherwise the anchor is appended at the end of the paragraph. Specs
    pointing past the last paragraph are not placed.
    """

    if not html or not specs:
        return html, []

    soup = make_soup(html)
    blocks = soup.find_all(PARAGRAPH_TAG)
    placed: List[PlacedLink] = []

    for spec in specs:
        if spec.paragraph_index < 0 or spec.paragraph_index >= len(blocks):
            continue
        block = blocks[spec.paragraph_index]
        context = _embed(soup, block, spec)
        if context is not None:
            placed.append(PlacedLink(spec=spec, embedded=True, context=context))
            continue
        block.append(NavigableString(" "))
        block.append(_new_anchor(soup, spec, spec.anchor_text, placement="appended"))
        placed.append(PlacedLink(spec=spec, embedded=False))

    return render(soup, html), placed


def strip_auto_links(html: str) -> str:
    """Remove automatically inserted anchors, keeping manual ones.

    Embedded anchors are unwrapped back to their original text; appended
    anchors are removed together with the separating space.
    """

    if not html:
        return html

    soup = make_soup(html)
    for anchor in soup.find_all("a", attrs={"data-origin": AUTO_ORIGIN}):
        if anchor.get("data-placement") == "appended":
            previous = anchor.previous_sibling
            if isinstance(previous, NavigableString) and previous.endswith(" "):
                trimmed = str(previous)[:-1]
                if trimmed:
                    previous.replace_with(trimmed)
                else:
                    previous.extract()
            anchor.decompose()
        else:
            anchor.unwrap()
    return render(soup, html)


def render(soup: BeautifulSoup, original: str) -> str:
    """Serialize ``soup`` without the document wrapper the parser may add."""

    if "<body" not in original.lower() and soup.body is not None:
        return "".join(str(child) for child in soup.body.contents)
    return str(soup)


def _embed(soup: BeautifulSoup, block, spec: LinkSpec) -> Optional[str]:
    phrase = re.sub(r"\s+", " ", spec.anchor_text.strip())
    if not phrase:
        return None
    pattern = re.compile(WORD_BOUNDARY.format(term=re.escape(phrase)), flags=re.IGNORECASE)

    for text_node in list(block.descendants):
        if not isinstance(text_node, NavigableString):
            continue
        if _should_skip(text_node):
            continue

        original = str(text_node)
        if not original.strip():
            continue
        match = pattern.search(original)
        if not match:
            continue

        after = original[match.end():]
        if after:
            text_node.insert_after(after)
        text_node.insert_after(_new_anchor(soup, spec, match.group(0), placement="embedded"))
        before = original[:match.start()]
        if before:
            text_node.replace_with(before)
        else:
            text_node.extract()
        return _extract_context_snippet(original, match)
    return None


def _new_anchor(soup: BeautifulSoup, spec: LinkSpec, text: str, *, placement: str):
    anchor = soup.new_tag("a", href=spec.href)
    anchor["class"] = [spec.css_class]
    anchor["data-origin"] = AUTO_ORIGIN
    anchor["data-placement"] = placement
    for key, value in spec.attrs.items():
        anchor[f"data-{key}"] = value
    anchor.string = text
    return anchor


def _extract_context_snippet(text: str, match: re.Match[str], window: int = 45) -> str:
    """Return a trimmed snippet of ``text`` surrounding the match."""

    start = max(0, match.start() - window)
    end = min(len(text), match.end() + window)
    return re.sub(r"\s+", " ", text[start:end].strip())


def _should_skip(node: NavigableString) -> bool:
    """Return ``True`` if any ancestor of the text node is in ``SKIP_TAGS``."""

    parent = node.parent
    while parent is not None and getattr(parent, "name", None):
        if parent.name and parent.name.lower() in SKIP_TAGS:
            return True
        parent = parent.parent
    return False

"""Typed data structures used by the linking engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class NodeType(str, Enum):
    STANDARD = "standard"
    PILLAR = "pillar"
    LANDING = "landing"
    COMPARATIVE = "comparative"


class NodeStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AnchorCategory(str, Enum):
    """Editorial anchor classes. Declaration order is the tie-break priority."""

    EXACT_MATCH = "exact_match"
    LONG_TAIL = "long_tail"
    GENERIC = "generic"
    CTA = "cta"
    QUESTION = "question"


class SourceType(str, Enum):
    GOVERNMENT = "government"
    ORGANIZATION = "organization"
    REFERENCE = "reference"
    NEWS = "news"
    AUTHORITY = "authority"


class EdgeOrigin(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    ACTIVE = "active"
    BROKEN = "broken"


class ExternalKind(str, Enum):
    AUTHORITY = "authority"
    AFFILIATE = "affiliate"


def enum_choices(enum_cls) -> List[Tuple[str, str]]:
    """Return Django-style ``choices`` for a str enum."""

    return [(item.value, item.value.replace("_", " ").title()) for item in enum_cls]


@dataclass(frozen=True)
class Node:
    """Normalized content node as seen by the engine."""

    id: int
    platform_id: int
    title: str
    text: str
    country: Optional[str]
    language: str
    themes: List[str]
    type: NodeType
    pillar_id: Optional[int] = None
    url: str = ""


@dataclass(frozen=True)
class Domain:
    """Authority domain snapshot considered for external linking."""

    id: int
    domain: str
    name: str
    source_type: SourceType
    authority_score: int
    country: Optional[str]
    themes: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    broken: bool = False

    @property
    def url(self) -> str:
        return f"https://{self.domain}"


@dataclass(frozen=True)
class ScoredCandidate:
    """Candidate target node with its composite relevance score."""

    node: Node
    score: float
    pagerank: float = 0.0
    inbound: int = 0
    cross_language: bool = False


@dataclass(frozen=True)
class EdgeProposal:
    """Internal edge proposed by the planner, not yet persisted."""

    source_id: int
    target_id: int
    anchor_text: str
    anchor_category: AnchorCategory
    paragraph_index: int
    relevance_score: float
    reason: str = "relevance"

    def as_dict(self) -> Dict[str, object]:
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "anchor_text": self.anchor_text,
            "anchor_category": self.anchor_category.value,
            "paragraph_index": self.paragraph_index,
            "relevance_score": round(self.relevance_score, 2),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Shortfall:
    """Soft shortfall reported on a processing result."""

    code: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class Violation:
    """One failed compliance check for a node's existing edges."""

    code: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ResolvedRule:
    """Linking rule with every field resolved against the default rule."""

    min_internal_links: int
    max_internal_links: int
    min_relevance_score: int
    min_external_links: int
    max_external_links: int
    min_authority_score: int
    require_government: bool
    max_affiliate_links: int
    anchor_distribution: Dict[AnchorCategory, int]
    exclude_intro: bool
    exclude_conclusion: bool
    max_links_per_paragraph: int
    source_priority: List[SourceType]
    max_pillar_children: int
    require_pillar_link: bool
    allow_cross_language: bool = False
    is_default: bool = False

    def as_dict(self) -> Dict[str, object]:
        return {
            "min_internal_links": self.min_internal_links,
            "max_internal_links": self.max_internal_links,
            "min_relevance_score": self.min_relevance_score,
            "min_external_links": self.min_external_links,
            "max_external_links": self.max_external_links,
            "min_authority_score": self.min_authority_score,
            "require_government": self.require_government,
            "max_affiliate_links": self.max_affiliate_links,
            "anchor_distribution": {key.value: value for key, value in self.anchor_distribution.items()},
            "exclude_intro": self.exclude_intro,
            "exclude_conclusion": self.exclude_conclusion,
            "max_links_per_paragraph": self.max_links_per_paragraph,
            "source_priority": [item.value for item in self.source_priority],
            "max_pillar_children": self.max_pillar_children,
            "require_pillar_link": self.require_pillar_link,
            "allow_cross_language": self.allow_cross_language,
            "is_default": self.is_default,
        }

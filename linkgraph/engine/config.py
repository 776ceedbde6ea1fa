"""Configuration helpers for the linking engine."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass(frozen=True)
class EngineConfig:
    """Typed wrapper around the engine configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def relevance_weight(self, feature: str) -> float:
        weights = self.raw.get("relevance_weights", {})
        return float(weights.get(feature, 0.0))

    def pagerank(self, key: str) -> Any:
        return self.raw.get("pagerank", {}).get(key)

    @property
    def default_rule(self) -> Dict[str, Any]:
        return self.raw.get("default_rule", {})

    @property
    def anchor_templates(self) -> Dict[str, Dict[str, list]]:
        return self.raw.get("anchor_templates", {})


# Fallback rule applied to platforms without a stored LinkingRule, and to the
# unset fields of stored rules.
DEFAULT_LINKING_RULE: Dict[str, Any] = {
    "min_internal_links": 3,
    "max_internal_links": 8,
    "min_relevance_score": 40,
    "min_external_links": 1,
    "max_external_links": 4,
    "min_authority_score": 60,
    "require_government": True,
    "max_affiliate_links": 2,
    "anchor_distribution": {
        "exact_match": 30,
        "long_tail": 25,
        "generic": 20,
        "cta": 15,
        "question": 10,
    },
    "exclude_intro": True,
    "exclude_conclusion": True,
    "max_links_per_paragraph": 1,
    "source_priority": ["government", "organization", "reference", "news", "authority"],
    "max_pillar_children": 20,
    "require_pillar_link": True,
    "allow_cross_language": False,
}


DEFAULTS: Dict[str, Any] = {
    "candidate_pool_size": 200,
    "min_paragraph_words": 0,
    "relevance_weights": {
        "theme": 35.0,
        "text": 25.0,
        "country": 15.0,
        "language": 15.0,
        "type": 10.0,
    },
    "pagerank": {
        "damping": 0.85,
        "tolerance": 1e-6,
        "max_iterations": 100,
    },
    "default_rule": DEFAULT_LINKING_RULE,
    "anchor_templates": {
        "en": {
            "long_tail": ["{title}: complete guide", "everything about {title}", "practical tips on {title}"],
            "generic": ["learn more", "read more here", "see this article"],
            "cta": ["discover our guide to {title}", "check out {title}", "read our {title} guide"],
            "question": ["what should you know about {title}?", "how does {title} work?"],
        },
        "fr": {
            "long_tail": ["{title} : guide complet", "tout savoir sur {title}", "conseils pratiques sur {title}"],
            "generic": ["en savoir plus", "lire la suite", "voir cet article"],
            "cta": ["découvrez notre guide {title}", "consultez {title}"],
            "question": ["que faut-il savoir sur {title} ?", "comment fonctionne {title} ?"],
        },
        "es": {
            "long_tail": ["{title}: guía completa", "todo sobre {title}", "consejos prácticos sobre {title}"],
            "generic": ["saber más", "leer más", "ver este artículo"],
            "cta": ["descubra nuestra guía {title}", "consulte {title}"],
            "question": ["¿qué saber sobre {title}?", "¿cómo funciona {title}?"],
        },
        "de": {
            "long_tail": ["{title}: vollständiger Leitfaden", "alles über {title}", "praktische Tipps zu {title}"],
            "generic": ["mehr erfahren", "weiterlesen", "diesen Artikel ansehen"],
            "cta": ["entdecken Sie unseren Leitfaden {title}", "lesen Sie {title}"],
            "question": ["was sollten Sie über {title} wissen?", "wie funktioniert {title}?"],
        },
    },
}


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from YAML, merging with defaults."""

    data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        merge_into(data, user)

    return EngineConfig(data)


def merge_into(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value

"""Database models for the linkgraph app.

The app stores content nodes grouped by platform, the directed internal
and external edges between them, the authority domain catalog, the
per-platform linking rules and the PageRank snapshots computed over the
internal graph.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q

from .engine.types import (
    AnchorCategory,
    EdgeOrigin,
    ExternalKind,
    NodeStatus,
    NodeType,
    SourceType,
    VerificationStatus,
    enum_choices,
)


class Platform(models.Model):
    """A publishing platform owning its own content graph."""

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.name


class ContentNode(models.Model):
    """One piece of generated content with paragraph-segmented HTML."""

    platform = models.ForeignKey(Platform, on_delete=models.CASCADE, related_name='nodes')
    title = models.CharField(max_length=300)
    slug = models.SlugField(max_length=255)
    url = models.CharField(max_length=500, blank=True)
    country_code = models.CharField(max_length=8, blank=True, default='', db_index=True)
    language_code = models.CharField(max_length=8, db_index=True)
    themes = models.JSONField(default=list, blank=True)
    node_type = models.CharField(
        max_length=20,
        choices=enum_choices(NodeType),
        default=NodeType.STANDARD.value,
    )
    status = models.CharField(
        max_length=20,
        choices=enum_choices(NodeStatus),
        default=NodeStatus.PUBLISHED.value,
        db_index=True,
    )
    content = models.TextField(blank=True)
    pillar = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='children',
    )
    links_processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('platform', 'slug')
        indexes = [models.Index(fields=['platform', 'status', 'language_code'])]

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.title

    @property
    def href(self) -> str:
        return self.url or f'/{self.slug}/'


class InternalEdge(models.Model):
    """Directed link from one content node to another."""

    source = models.ForeignKey(ContentNode, on_delete=models.CASCADE, related_name='outbound_edges')
    target = models.ForeignKey(ContentNode, on_delete=models.CASCADE, related_name='inbound_edges')
    anchor_text = models.CharField(max_length=300)
    anchor_category = models.CharField(max_length=20, choices=enum_choices(AnchorCategory))
    paragraph_index = models.PositiveIntegerField(null=True, blank=True)
    origin = models.CharField(
        max_length=20,
        choices=enum_choices(EdgeOrigin),
        default=EdgeOrigin.AUTOMATIC.value,
    )
    is_active = models.BooleanField(default=True)
    relevance_score = models.FloatField(default=0.0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=~Q(source=F('target')), name='internal_edge_no_self_link'),
            models.UniqueConstraint(fields=['source', 'target'], name='internal_edge_unique_pair'),
        ]

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f'{self.source_id} -> {self.target_id}'


class AuthorityDomain(models.Model):
    """External domain that content may cite as a source."""

    domain = models.CharField(max_length=255, unique=True)
    name = models.CharField(max_length=200, blank=True)
    source_type = models.CharField(max_length=20, choices=enum_choices(SourceType))
    country_code = models.CharField(max_length=8, null=True, blank=True)
    themes = models.JSONField(default=list, blank=True)
    languages = models.JSONField(default=list, blank=True)
    authority_score = models.PositiveSmallIntegerField(default=50)
    is_active = models.BooleanField(default=True)
    failure_count = models.PositiveIntegerField(default=0)
    last_verified_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.domain


class AffiliateOffer(models.Model):
    """Commercial link a platform may place in its content."""

    platform = models.ForeignKey(Platform, on_delete=models.CASCADE, related_name='affiliate_offers')
    name = models.CharField(max_length=200)
    url = models.URLField(max_length=500)
    anchor_text = models.CharField(max_length=200, blank=True)
    countries = models.JSONField(default=list, blank=True)
    themes = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.name


class ExternalEdge(models.Model):
    """Link from a content node to an authority domain or affiliate offer."""

    source = models.ForeignKey(ContentNode, on_delete=models.CASCADE, related_name='external_edges')
    domain = models.ForeignKey(
        AuthorityDomain,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='edges',
    )
    url = models.CharField(max_length=500)
    anchor_text = models.CharField(max_length=300)
    kind = models.CharField(
        max_length=20,
        choices=enum_choices(ExternalKind),
        default=ExternalKind.AUTHORITY.value,
    )
    authority_score = models.PositiveSmallIntegerField(default=0)
    source_type = models.CharField(max_length=20, choices=enum_choices(SourceType), blank=True)
    verification_status = models.CharField(
        max_length=20,
        choices=enum_choices(VerificationStatus),
        default=VerificationStatus.UNVERIFIED.value,
    )
    last_verified_at = models.DateTimeField(null=True, blank=True)
    paragraph_index = models.PositiveIntegerField(null=True, blank=True)
    origin = models.CharField(
        max_length=20,
        choices=enum_choices(EdgeOrigin),
        default=EdgeOrigin.AUTOMATIC.value,
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('source', 'url')

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f'{self.source_id} -> {self.url}'


class LinkingRule(models.Model):
    """Per-platform linking policy. Unset fields fall back to the default rule."""

    platform = models.OneToOneField(Platform, on_delete=models.CASCADE, related_name='linking_rule')
    min_internal_links = models.PositiveSmallIntegerField(null=True, blank=True)
    max_internal_links = models.PositiveSmallIntegerField(null=True, blank=True)
    min_relevance_score = models.PositiveSmallIntegerField(null=True, blank=True)
    min_external_links = models.PositiveSmallIntegerField(null=True, blank=True)
    max_external_links = models.PositiveSmallIntegerField(null=True, blank=True)
    min_authority_score = models.PositiveSmallIntegerField(null=True, blank=True)
    require_government = models.BooleanField(null=True, blank=True)
    max_affiliate_links = models.PositiveSmallIntegerField(null=True, blank=True)
    anchor_distribution = models.JSONField(null=True, blank=True)
    exclude_intro = models.BooleanField(null=True, blank=True)
    exclude_conclusion = models.BooleanField(null=True, blank=True)
    max_links_per_paragraph = models.PositiveSmallIntegerField(null=True, blank=True)
    source_priority = models.JSONField(null=True, blank=True)
    max_pillar_children = models.PositiveSmallIntegerField(null=True, blank=True)
    require_pillar_link = models.BooleanField(null=True, blank=True)
    allow_cross_language = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    RULE_FIELDS = (
        'min_internal_links',
        'max_internal_links',
        'min_relevance_score',
        'min_external_links',
        'max_external_links',
        'min_authority_score',
        'require_government',
        'max_affiliate_links',
        'anchor_distribution',
        'exclude_intro',
        'exclude_conclusion',
        'max_links_per_paragraph',
        'source_priority',
        'max_pillar_children',
        'require_pillar_link',
        'allow_cross_language',
    )

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f'Linking rule for {self.platform}'

    def as_data(self) -> dict:
        return {name: getattr(self, name) for name in self.RULE_FIELDS}


class PageRankRun(models.Model):
    """One PageRank computation over a platform's internal graph."""

    platform = models.ForeignKey(Platform, on_delete=models.CASCADE, related_name='pagerank_runs')
    started_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    iterations = models.PositiveIntegerField(default=0)
    converged = models.BooleanField(default=False)
    delta = models.FloatField(default=0.0)
    damping = models.FloatField(default=0.85)
    node_count = models.PositiveIntegerField(default=0)
    is_current = models.BooleanField(default=False, db_index=True)

    class Meta:
        ordering = ['-started_at']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f'{self.platform} · {self.started_at:%Y-%m-%d %H:%M}'


class PageRankScore(models.Model):
    """Score of one node within a PageRank run."""

    run = models.ForeignKey(PageRankRun, on_delete=models.CASCADE, related_name='scores')
    node = models.ForeignKey(ContentNode, on_delete=models.CASCADE, related_name='pagerank_scores')
    platform = models.ForeignKey(Platform, on_delete=models.CASCADE, related_name='pagerank_scores')
    score = models.FloatField()
    computed_at = models.DateTimeField()
    iterations = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ('run', 'node')
        indexes = [models.Index(fields=['platform', 'score'])]

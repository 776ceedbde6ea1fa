from django.contrib import admin

from .forms import LinkingRuleForm
from .models import (
    AffiliateOffer,
    AuthorityDomain,
    ContentNode,
    ExternalEdge,
    InternalEdge,
    LinkingRule,
    PageRankRun,
    Platform,
)


@admin.register(Platform)
class PlatformAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'created_at')
    search_fields = ('name', 'slug')


@admin.register(ContentNode)
class ContentNodeAdmin(admin.ModelAdmin):
    list_display = ('title', 'platform', 'node_type', 'status', 'language_code', 'country_code', 'links_processed_at')
    list_filter = ('platform', 'node_type', 'status', 'language_code')
    search_fields = ('title', 'slug', 'url')
    raw_id_fields = ('pillar',)


@admin.register(InternalEdge)
class InternalEdgeAdmin(admin.ModelAdmin):
    list_display = ('source', 'target', 'anchor_text', 'anchor_category', 'paragraph_index', 'origin', 'is_active')
    list_filter = ('anchor_category', 'origin', 'is_active')
    search_fields = ('anchor_text', 'source__title', 'target__title')
    raw_id_fields = ('source', 'target')


@admin.register(ExternalEdge)
class ExternalEdgeAdmin(admin.ModelAdmin):
    list_display = ('source', 'url', 'kind', 'authority_score', 'verification_status', 'last_verified_at', 'is_active')
    list_filter = ('kind', 'verification_status', 'source_type', 'is_active')
    search_fields = ('url', 'anchor_text', 'source__title')
    raw_id_fields = ('source', 'domain')


@admin.register(AuthorityDomain)
class AuthorityDomainAdmin(admin.ModelAdmin):
    list_display = ('domain', 'name', 'source_type', 'country_code', 'authority_score', 'failure_count', 'is_active')
    list_filter = ('source_type', 'is_active')
    search_fields = ('domain', 'name')


@admin.register(AffiliateOffer)
class AffiliateOfferAdmin(admin.ModelAdmin):
    list_display = ('name', 'platform', 'url', 'is_active')
    list_filter = ('platform', 'is_active')
    search_fields = ('name', 'url')


@admin.register(LinkingRule)
class LinkingRuleAdmin(admin.ModelAdmin):
    form = LinkingRuleForm
    list_display = ('platform', 'min_internal_links', 'max_internal_links', 'min_relevance_score', 'is_active', 'updated_at')


@admin.register(PageRankRun)
class PageRankRunAdmin(admin.ModelAdmin):
    list_display = ('platform', 'started_at', 'iterations', 'converged', 'node_count', 'is_current')
    list_filter = ('platform', 'converged', 'is_current')

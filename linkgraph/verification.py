"""Periodic liveness checks of external edges and authority domains.

Only the response status is inspected; page content is never read.
Injection does not wait on this job: unverified domains are usable and
domains whose last check failed are skipped until they pass again.
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from .engine.types import VerificationStatus
from .models import AuthorityDomain, ExternalEdge

logger = logging.getLogger(__name__)

USER_AGENT = 'linkgraph-verifier/1.0'


def check_url(url: str, timeout: Optional[float] = None) -> bool:
    """Return ``True`` when ``url`` answers with a non-error status.

    A ``HEAD`` request is tried first; servers rejecting it get a ``GET``
    whose body is left unread.
    """

    timeout = timeout or float(getattr(settings, 'LINKGRAPH_VERIFY_TIMEOUT', 10))
    for method in ('HEAD', 'GET'):
        request = urllib.request.Request(url, method=method, headers={'User-Agent': USER_AGENT})
        try:
            with urllib.request.urlopen(request, timeout=timeout) as resp:
                return resp.status < 400
        except urllib.error.HTTPError as exc:
            if method == 'HEAD' and exc.code in (403, 405, 501):
                continue
            logger.debug('%s %s answered %s', method, url, exc.code)
            return False
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.debug('%s %s failed: %s', method, url, exc)
            return False
    return False


def verify_external_edges(
    platform_id: Optional[int] = None,
    limit: int = 200,
    stale_days: int = 7,
    checker=check_url,
) -> Dict[str, object]:
    """Re-check active external edges not verified in the last ``stale_days``.

    Edges are marked active or broken. A domain whose links all failed gets
    its ``failure_count`` bumped and is deactivated once it reaches
    ``LINKGRAPH_DOMAIN_FAILURE_LIMIT``; a passing check resets the count.
    """

    now = timezone.now()
    cutoff = now - timedelta(days=stale_days)
    edges = ExternalEdge.objects.filter(is_active=True).filter(
        Q(last_verified_at__isnull=True) | Q(last_verified_at__lt=cutoff)
    )
    if platform_id is not None:
        edges = edges.filter(source__platform_id=platform_id)
    edges = list(edges.order_by('last_verified_at', 'pk')[:limit])

    results: Dict[str, bool] = {}
    for edge in edges:
        if edge.url not in results:
            results[edge.url] = checker(edge.url)

    domain_results: Dict[int, List[bool]] = defaultdict(list)
    for edge in edges:
        alive = results[edge.url]
        edge.verification_status = (VerificationStatus.ACTIVE if alive else VerificationStatus.BROKEN).value
        edge.last_verified_at = now
        if edge.domain_id is not None:
            domain_results[edge.domain_id].append(alive)
    ExternalEdge.objects.bulk_update(edges, ['verification_status', 'last_verified_at'])

    failure_limit = int(getattr(settings, 'LINKGRAPH_DOMAIN_FAILURE_LIMIT', 3))
    deactivated: List[str] = []
    for domain in AuthorityDomain.objects.filter(pk__in=list(domain_results)):
        if any(domain_results[domain.pk]):
            domain.failure_count = 0
        else:
            domain.failure_count += 1
            if domain.failure_count >= failure_limit and domain.is_active:
                domain.is_active = False
                deactivated.append(domain.domain)
                logger.warning('Deactivated %s after %d failed checks', domain.domain, domain.failure_count)
        domain.last_verified_at = now
        domain.save(update_fields=['failure_count', 'is_active', 'last_verified_at'])

    broken = sum(1 for alive in results.values() if not alive)
    logger.info('Verified %d external urls: %d broken', len(results), broken)
    return {
        'checked_edges': len(edges),
        'checked_urls': len(results),
        'active': len(results) - broken,
        'broken': broken,
        'deactivated_domains': deactivated,
    }

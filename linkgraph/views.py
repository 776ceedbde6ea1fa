"""JSON endpoints for the linkgraph app.

Each view delegates to the service modules and maps the service errors to
HTTP statuses: validation 400, not found 404, conflict 409 and transient
failures 503.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, Callable, Dict

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import balance, orchestrator, ranking, rules
from .errors import LinkGraphError, ValidationError
from .forms import ListingForm, RepairForm, WeakLinkForm
from .store import get_platform

logger = logging.getLogger(__name__)


def json_api(view: Callable[..., Any]) -> Callable[..., JsonResponse]:
    """Serialize the view's return value and map service errors to statuses."""

    @functools.wraps(view)
    def wrapper(request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        try:
            payload = view(request, *args, **kwargs)
        except ValidationError as exc:
            return JsonResponse({'error': str(exc), 'violations': exc.violations}, status=exc.status_code)
        except LinkGraphError as exc:
            if exc.status_code >= 500:
                logger.warning('%s failed: %s', request.path, exc)
            return JsonResponse({'error': str(exc)}, status=exc.status_code)
        if isinstance(payload, HttpResponse):
            return payload
        status = 200
        if isinstance(payload, tuple):
            payload, status = payload
        return JsonResponse(payload, status=status, safe=False)

    return csrf_exempt(wrapper)


def _body(request: HttpRequest) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError([f'Request body is not valid JSON: {exc}']) from exc
    if not isinstance(data, dict):
        raise ValidationError(['Request body must be a JSON object.'])
    return data


def _form_data(form) -> Dict[str, Any]:
    if not form.is_valid():
        raise ValidationError([
            f'{field}: {message}'
            for field, messages in form.errors.items()
            for message in messages
        ])
    return form.cleaned_data


@json_api
@require_POST
def process_node(request: HttpRequest, node_id: int):
    """Run the linking passes for one article."""

    options = orchestrator.ProcessOptions.from_dict(_body(request).get('options'))
    return orchestrator.process_article(node_id, options).as_dict()


@json_api
@require_POST
def process_batch(request: HttpRequest):
    """Process a list of articles, or dispatch a whole platform in waves."""

    data = _body(request)
    options = orchestrator.ProcessOptions.from_dict(data.get('options'))
    if 'platform_id' in data:
        if not isinstance(data['platform_id'], int):
            raise ValidationError(['platform_id must be an integer.'])
        return orchestrator.dispatch_platform_batch(
            data['platform_id'],
            options,
            language=data.get('language') or None,
        )
    node_ids = data.get('node_ids')
    if not isinstance(node_ids, list) or not all(isinstance(item, int) for item in node_ids):
        raise ValidationError(['node_ids must be a list of integers.'])
    summary = orchestrator.process_batch(node_ids, options)
    summary['failed'] = {str(key): value for key, value in summary['failed'].items()}
    return summary


@json_api
@require_GET
def node_health(request: HttpRequest, node_id: int):
    return orchestrator.check_article_link_health(node_id)


@json_api
@require_GET
def node_suggestions(request: HttpRequest, node_id: int):
    return balance.suggest_link_improvements(node_id)


@json_api
@require_GET
def platform_report(request: HttpRequest, platform_id: int):
    language = request.GET.get('language') or None
    return balance.generate_platform_report(platform_id, language)


@json_api
@require_GET
def platform_orphans(request: HttpRequest, platform_id: int):
    params = _form_data(ListingForm(request.GET))
    return balance.identify_orphan_articles(platform_id, params['language'], params['limit'], params['offset'])


@json_api
@require_GET
def platform_dead_ends(request: HttpRequest, platform_id: int):
    params = _form_data(ListingForm(request.GET))
    return balance.identify_dead_ends(platform_id, params['language'], params['limit'], params['offset'])


@json_api
@require_GET
def platform_weakly_connected(request: HttpRequest, platform_id: int):
    params = _form_data(WeakLinkForm(request.GET))
    return balance.identify_weakly_connected(
        platform_id,
        params['min_links'],
        params['language'],
        params['limit'],
        params['offset'],
    )


@json_api
@require_GET
def platform_suggestions(request: HttpRequest, platform_id: int):
    language = request.GET.get('language') or None
    return balance.suggest_platform_improvements(platform_id, language)


@json_api
@require_POST
def platform_repair(request: HttpRequest, platform_id: int):
    params = _form_data(RepairForm(_body(request)))
    return balance.auto_repair_link_balance(
        platform_id,
        language=params['language'],
        dry_run=params['dry_run'],
        limit=params.get('limit'),
    )


@json_api
@require_http_methods(['GET', 'POST'])
def platform_pagerank(request: HttpRequest, platform_id: int):
    """POST recomputes the platform's PageRank; GET reads the current run."""

    if request.method == 'POST':
        return ranking.calculate_for_platform(platform_id)
    params = _form_data(ListingForm(request.GET))
    return {
        'summary': ranking.summary(platform_id),
        'high_value': ranking.identify_high_value_pages(platform_id, params['limit']),
        'low_value': ranking.identify_low_value_pages(platform_id, params['limit']),
        'link_flow': ranking.optimize_link_flow(platform_id),
    }


@json_api
@require_http_methods(['GET', 'PUT', 'POST', 'DELETE'])
def platform_rules(request: HttpRequest, platform_id: int):
    """Read, upsert (PUT), create (POST) or reset (DELETE) a platform's rule."""

    if request.method == 'GET':
        get_platform(platform_id)
        return rules.get_rule(platform_id).as_dict()
    if request.method == 'DELETE':
        return rules.reset_rule(platform_id).as_dict()
    created = request.method == 'POST'
    payload = rules.set_rule(platform_id, _body(request), create=created).as_dict()
    return (payload, 201) if created else payload


@json_api
@require_POST
def validate_rule(request: HttpRequest):
    violations = rules.validate(_body(request))
    return {'valid': not violations, 'violations': violations}

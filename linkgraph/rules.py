"""Linking rule lookup and CRUD with write-time validation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from django.db import IntegrityError, transaction

from .engine.policy import resolve_rule, validate_rule
from .engine.types import ResolvedRule
from .errors import ConflictError, ValidationError
from .models import LinkingRule
from .store import get_engine_config, get_platform

logger = logging.getLogger(__name__)


def get_stored_rule(platform_id: int) -> Optional[LinkingRule]:
    return LinkingRule.objects.filter(platform_id=platform_id, is_active=True).first()


def get_rule(platform_id: int) -> ResolvedRule:
    """Return the platform's rule with unset fields taken from the default."""

    stored = get_stored_rule(platform_id)
    default = get_engine_config().default_rule
    return resolve_rule(stored.as_data() if stored else None, default)


def validate(data: Mapping[str, Any], base: Optional[Mapping[str, Any]] = None) -> list:
    """Validate ``data`` alone and merged over ``base`` (or the default rule).

    Returns the violated invariants; never mutates anything.
    """

    unknown = sorted(set(data) - set(LinkingRule.RULE_FIELDS))
    if unknown:
        return [f'Unknown rule fields: {", ".join(unknown)}.']

    errors = validate_rule(data)
    if errors:
        return errors

    merged: Dict[str, Any] = dict(get_engine_config().default_rule)
    for key, value in (base or {}).items():
        if value is not None:
            merged[key] = value
    for key, value in data.items():
        if value is not None:
            merged[key] = value
    return validate_rule(merged)


def set_rule(platform_id: int, data: Mapping[str, Any], *, create: bool = False) -> ResolvedRule:
    """Create or update the platform's rule.

    With ``create`` a second rule for the same platform is a conflict;
    otherwise the stored rule is updated in place (upsert).
    """

    platform = get_platform(platform_id)
    with transaction.atomic():
        stored = LinkingRule.objects.select_for_update().filter(platform=platform).first()
        if stored is not None and create:
            raise ConflictError(f'Platform {platform_id} already has a linking rule.')

        errors = validate(data, base=stored.as_data() if stored else None)
        if errors:
            raise ValidationError(errors)

        if stored is None:
            stored = LinkingRule(platform=platform)
        for key, value in data.items():
            setattr(stored, key, value)
        stored.is_active = True
        try:
            stored.save()
        except IntegrityError as exc:
            raise ConflictError(f'Platform {platform_id} already has a linking rule.') from exc

    logger.info('Saved linking rule for platform %s', platform_id)
    return get_rule(platform_id)


def reset_rule(platform_id: int) -> ResolvedRule:
    """Delete the stored rule so the platform falls back to the default."""

    get_platform(platform_id)
    deleted, _ = LinkingRule.objects.filter(platform_id=platform_id).delete()
    if deleted:
        logger.info('Reset linking rule for platform %s', platform_id)
    return get_rule(platform_id)

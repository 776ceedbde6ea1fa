"""Exceptions raised by the linkgraph services.

Soft shortfalls (too few qualifying candidates or domains) are not
exceptions: they are reported as warnings on the processing result.
"""

from __future__ import annotations

from typing import Iterable, List


class LinkGraphError(Exception):
    """Base class for linkgraph service errors."""

    status_code = 500


class ValidationError(LinkGraphError):
    """Malformed rule or request, rejected before any state change."""

    status_code = 400

    def __init__(self, violations: Iterable[str]):
        self.violations: List[str] = list(violations)
        super().__init__('; '.join(self.violations) or 'Invalid input.')


class NotFoundError(LinkGraphError):
    """A referenced node, platform, domain or edge does not exist."""

    status_code = 404


class ConflictError(LinkGraphError):
    """The operation clashes with existing state (duplicate rule, held lock)."""

    status_code = 409


class TransientFailure(LinkGraphError):
    """Infrastructure failure; the operation is safe to retry."""

    status_code = 503

"""Fire-and-forget job dispatch used for asynchronous batch fan-out.

The dispatcher class is selected with the ``LINKGRAPH_DISPATCHER`` setting
(a dotted path). A deployment backed by a real queue only needs to provide a
class with the same ``submit`` signature.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from typing import Any, Callable, Optional, Set

from django.conf import settings
from django.db import close_old_connections
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class InlineDispatcher:
    """Runs jobs immediately in the calling thread, ignoring the delay."""

    def submit(self, func: Callable[..., Any], *args: Any, delay: float = 0, **kwargs: Any) -> Any:
        logger.debug('Running %s inline (requested delay %.1fs)', getattr(func, '__name__', func), delay)
        return func(*args, **kwargs)


class ThreadPoolDispatcher:
    """Runs jobs on a shared thread pool after an optional delay."""

    def __init__(self, max_workers: Optional[int] = None):
        workers = max_workers or getattr(settings, 'LINKGRAPH_DISPATCH_WORKERS', 4)
        self.pool = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix='linkgraph')
        self.futures: Set[concurrent.futures.Future] = set()

    def submit(self, func: Callable[..., Any], *args: Any, delay: float = 0, **kwargs: Any) -> concurrent.futures.Future:
        future = self.pool.submit(_run_delayed, func, delay, args, kwargs)
        # Pending futures only; a finished one drops out through its callback.
        self.futures.add(future)
        future.add_done_callback(self.futures.discard)
        return future

    def wait(self, timeout: Optional[float] = None) -> None:
        done, _ = concurrent.futures.wait(list(self.futures), timeout=timeout)
        self.futures.difference_update(done)


def _run_delayed(func: Callable[..., Any], delay: float, args: tuple, kwargs: dict) -> Any:
    if delay > 0:
        time.sleep(delay)
    close_old_connections()
    try:
        return func(*args, **kwargs)
    except Exception:
        logger.exception('Dispatched job %s failed', getattr(func, '__name__', func))
        raise
    finally:
        close_old_connections()


_dispatcher = None


def get_dispatcher():
    """Return the process-wide dispatcher configured in settings."""

    global _dispatcher
    path = getattr(settings, 'LINKGRAPH_DISPATCHER', 'linkgraph.jobs.InlineDispatcher')
    if _dispatcher is None or _dispatcher.__class__ is not import_string(path):
        _dispatcher = import_string(path)()
    return _dispatcher

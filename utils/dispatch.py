"""
Work that runs after the request that asked for it.

Password reset requests hand their whole job (account lookup, token write,
mail) to a dispatcher, so the request path is the same whether or not the
account exists. MAIL_DISPATCH=inline runs jobs in the calling thread, which
the test configuration uses.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def _run(fn: Callable, args, kwargs) -> None:
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.exception("Background job %s failed", getattr(fn, "__name__", fn))


class InlineDispatcher:
    def submit(self, fn: Callable, *args, **kwargs) -> None:
        _run(fn, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        pass


class BackgroundDispatcher:
    """
    Thread pool for out-of-band jobs.

    on_done runs in the worker after every job; the app passes the storage's
    close() so each job's thread-scoped DB session is released.
    """

    def __init__(self, max_workers: int = 2, on_done: Optional[Callable[[], None]] = None):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fintrack-jobs")
        self._on_done = on_done

    def submit(self, fn: Callable, *args, **kwargs) -> None:
        self._executor.submit(self._job, fn, args, kwargs)

    def _job(self, fn: Callable, args, kwargs) -> None:
        try:
            _run(fn, args, kwargs)
        finally:
            if self._on_done is not None:
                self._on_done()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def dispatcher_from_config(config, on_done: Optional[Callable[[], None]] = None):
    if config.get("MAIL_DISPATCH", "background") == "inline":
        return InlineDispatcher()
    return BackgroundDispatcher(max_workers=config.get("MAIL_DISPATCH_WORKERS", 2), on_done=on_done)

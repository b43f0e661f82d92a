"""Analysis request coordination.

Analysis is a pure function of the source text, so it can run in a worker
process.  The coordinator keeps at most one outstanding request per channel
(one channel per panel): a newer request fails the older one with
:class:`~solgraph_cli.errors.AnalysisSuperseded`, and a result that arrives
for a request that is no longer the latest is dropped.

If the worker pool cannot be created, breaks, or raises, the coordinator
marks it as failed and analyzes in-process from then on.  Callers see the
same ``Future[ParseResult]`` contract either way.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Executor, Future, ProcessPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .errors import AnalysisSuperseded, CoordinatorClosed
from .models import ParseResult
from .parser import analyze_source

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "default"

AnalyzeFn = Callable[[str], ParseResult]
ExecutorFactory = Callable[[], Executor]


@dataclass
class _Request:
    request_id: int
    future: "Future[ParseResult]"


class AnalysisCoordinator:
    """Route analysis requests to a worker pool, one live request per channel.

    Args:
        use_workers: Start with the worker pool enabled.  ``False`` analyzes
            in the calling thread.
        max_workers: Pool size for the default process pool.
        executor_factory: Builds the executor on first use.  Defaults to a
            :class:`ProcessPoolExecutor`.
        analyze: Analysis function; must be picklable for a process pool.
    """

    def __init__(
        self,
        use_workers: bool = True,
        max_workers: int = 1,
        executor_factory: Optional[ExecutorFactory] = None,
        analyze: AnalyzeFn = analyze_source,
    ) -> None:
        self.max_workers = max(1, int(max_workers))
        self._executor_factory = executor_factory or self._default_executor
        self._analyze = analyze
        self._executor: Optional[Executor] = None
        self._failed = not use_workers
        self._closed = False
        self._pending: Dict[str, _Request] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __enter__(self) -> "AnalysisCoordinator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def workers_failed(self) -> bool:
        return self._failed

    def _default_executor(self) -> Executor:
        return ProcessPoolExecutor(max_workers=self.max_workers)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, code: str, channel: str = DEFAULT_CHANNEL) -> "Future[ParseResult]":
        """Queue an analysis of *code* and return a future for its result."""
        outer: "Future[ParseResult]" = Future()
        with self._lock:
            if self._closed:
                raise CoordinatorClosed("Analysis coordinator is shut down")
            request_id = next(self._ids)
            previous = self._pending.get(channel)
            self._pending[channel] = _Request(request_id, outer)
            if previous is not None and not previous.future.done():
                logger.debug("Request %d on '%s' superseded by %d", previous.request_id, channel, request_id)
                previous.future.set_exception(AnalysisSuperseded(f"Request {previous.request_id} was superseded"))

        executor = self._get_executor()
        if executor is None:
            self._run_inline(channel, request_id, code)
            return outer

        try:
            inner = executor.submit(self._analyze, code)
        except Exception as exc:
            self._mark_failed(exc)
            self._run_inline(channel, request_id, code)
            return outer

        inner.add_done_callback(lambda done: self._on_worker_done(channel, request_id, code, done))
        return outer

    def analyze(self, code: str, channel: str = DEFAULT_CHANNEL, timeout: Optional[float] = None) -> ParseResult:
        """Blocking variant of :meth:`submit`."""
        return self.submit(code, channel).result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
            executor, self._executor = self._executor, None
            for request in pending:
                if not request.future.done():
                    request.future.set_exception(CoordinatorClosed("Analysis coordinator is shut down"))
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Analysis coordinator shut down")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_executor(self) -> Optional[Executor]:
        with self._lock:
            if self._failed or self._closed:
                return None
            if self._executor is None:
                try:
                    self._executor = self._executor_factory()
                    logger.info("Started analysis workers (max_workers=%d)", self.max_workers)
                except Exception as exc:
                    self._failed = True
                    logger.warning("Analysis workers unavailable, analyzing in-process: %s", exc)
                    return None
            return self._executor

    def _mark_failed(self, exc: BaseException) -> None:
        with self._lock:
            if self._failed:
                return
            self._failed = True
            executor, self._executor = self._executor, None
        logger.warning("Analysis worker failed, falling back to in-process analysis: %s", exc)
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_inline(self, channel: str, request_id: int, code: str) -> None:
        try:
            result = self._analyze(code)
        except Exception as exc:
            logger.warning("In-process analysis failed: %s", exc)
            result = ParseResult.empty()
        self._deliver(channel, request_id, result)

    def _is_latest(self, channel: str, request_id: int) -> bool:
        with self._lock:
            request = self._pending.get(channel)
            return request is not None and request.request_id == request_id

    def _on_worker_done(self, channel: str, request_id: int, code: str, done: "Future[ParseResult]") -> None:
        if self._closed:
            return
        exc: Optional[BaseException]
        if done.cancelled():
            exc = RuntimeError("worker task cancelled")
        else:
            exc = done.exception()
        if exc is None:
            self._deliver(channel, request_id, done.result())
            return
        self._mark_failed(exc)
        if self._is_latest(channel, request_id):
            self._run_inline(channel, request_id, code)

    def _deliver(self, channel: str, request_id: int, result: ParseResult) -> None:
        with self._lock:
            request = self._pending.get(channel)
            if request is None or request.request_id != request_id:
                logger.debug("Dropping stale result for request %d on '%s'", request_id, channel)
                return
            del self._pending[channel]
            if not request.future.done():
                request.future.set_result(result)

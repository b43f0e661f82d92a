"""Tests for the analysis coordinator (thread pools stand in for processes)."""

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import pytest

from solgraph_cli.coordinator import AnalysisCoordinator
from solgraph_cli.errors import AnalysisSuperseded, CoordinatorClosed
from solgraph_cli.models import ParseFunction, ParseResult


def _tagged(code: str) -> ParseResult:
    return ParseResult(functions=[ParseFunction(id=f"{code}.f", contract_name=code, function_name="f")])


class _Gate:
    """Analyze function that blocks on ``slow`` sources until released."""

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = []

    def __call__(self, code: str) -> ParseResult:
        self.calls.append(code)
        if code.startswith("slow"):
            self.started.set()
            self.release.wait(timeout=5)
        return _tagged(code)


class _FailingExecutor(Executor):
    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_exception(RuntimeError("worker crashed"))
        return future


class _BrokenSubmitExecutor(Executor):
    def submit(self, fn, *args, **kwargs):
        raise RuntimeError("pool is broken")


@pytest.fixture
def gate():
    gate = _Gate()
    yield gate
    gate.release.set()


def _thread_coordinator(analyze, workers: int = 2) -> AnalysisCoordinator:
    return AnalysisCoordinator(
        executor_factory=lambda: ThreadPoolExecutor(max_workers=workers),
        analyze=analyze,
    )


class TestRequests:
    def test_worker_result_is_delivered(self):
        """A worker's result resolves the request future."""
        with _thread_coordinator(_tagged) as coordinator:
            result = coordinator.analyze("A", timeout=5)

        assert [f.id for f in result.functions] == ["A.f"]
        assert not coordinator.workers_failed

    def test_newer_request_supersedes_older(self, gate):
        """A newer request fails the pending one as superseded."""
        with _thread_coordinator(gate) as coordinator:
            first = coordinator.submit("slow", channel="p1")
            assert gate.started.wait(timeout=5)
            second = coordinator.submit("fast", channel="p1")

            with pytest.raises(AnalysisSuperseded):
                first.result(timeout=5)
            assert [f.id for f in second.result(timeout=5).functions] == ["fast.f"]

            gate.release.set()

    def test_stale_result_is_dropped(self, gate):
        """A result that arrives after a newer request is ignored."""
        with _thread_coordinator(gate, workers=1) as coordinator:
            first = coordinator.submit("slow", channel="p1")
            assert gate.started.wait(timeout=5)
            second = coordinator.submit("slow-2", channel="p1")
            gate.release.set()

            result = second.result(timeout=5)

        assert isinstance(first.exception(timeout=5), AnalysisSuperseded)
        assert [f.id for f in result.functions] == ["slow-2.f"]

    def test_channels_are_independent(self, gate):
        """Requests on different channels do not supersede each other."""
        with _thread_coordinator(gate) as coordinator:
            first = coordinator.submit("slow", channel="p1")
            assert gate.started.wait(timeout=5)
            other = coordinator.analyze("B", channel="p2", timeout=5)

            assert not first.done()
            gate.release.set()

            assert [f.id for f in first.result(timeout=5).functions] == ["slow.f"]
        assert [f.id for f in other.functions] == ["B.f"]


class TestFallback:
    def test_disabled_workers_run_in_calling_thread(self):
        """With workers disabled analysis runs inline."""
        seen = []

        def analyze(code):
            seen.append(threading.get_ident())
            return _tagged(code)

        coordinator = AnalysisCoordinator(use_workers=False, analyze=analyze)
        future = coordinator.submit("A")

        assert future.done()
        assert seen == [threading.get_ident()]
        assert coordinator.workers_failed

    def test_factory_failure_falls_back(self):
        """A pool that cannot start falls back to inline analysis."""
        def factory():
            raise OSError("no processes here")

        coordinator = AnalysisCoordinator(executor_factory=factory, analyze=_tagged)

        assert [f.id for f in coordinator.analyze("A").functions] == ["A.f"]
        assert coordinator.workers_failed

    def test_worker_error_falls_back_in_process(self):
        """A crashed worker is retried in process."""
        coordinator = AnalysisCoordinator(executor_factory=_FailingExecutor, analyze=_tagged)

        result = coordinator.analyze("A", timeout=5)

        assert [f.id for f in result.functions] == ["A.f"]
        assert coordinator.workers_failed

    def test_submit_error_falls_back_in_process(self):
        """A submit failure is retried in process."""
        coordinator = AnalysisCoordinator(executor_factory=_BrokenSubmitExecutor, analyze=_tagged)

        assert [f.id for f in coordinator.analyze("A", timeout=5).functions] == ["A.f"]
        assert coordinator.workers_failed

    def test_failed_pool_is_not_recreated(self):
        """A failed pool is not started again."""
        created = []

        def factory():
            created.append(1)
            return _FailingExecutor()

        coordinator = AnalysisCoordinator(executor_factory=factory, analyze=_tagged)
        coordinator.analyze("A", timeout=5)
        coordinator.analyze("B", timeout=5)

        assert created == [1]

    def test_inline_analysis_error_yields_empty_result(self):
        """Inline analysis errors yield an empty result."""
        def analyze(code):
            raise ValueError("bad input")

        coordinator = AnalysisCoordinator(use_workers=False, analyze=analyze)

        assert coordinator.analyze("A").is_empty


class TestShutdown:
    def test_submit_after_shutdown(self):
        """Submitting after shutdown raises CoordinatorClosed."""
        coordinator = AnalysisCoordinator(use_workers=False, analyze=_tagged)
        coordinator.shutdown()

        with pytest.raises(CoordinatorClosed):
            coordinator.submit("A")

    def test_pending_requests_fail_on_shutdown(self, gate):
        """Shutdown fails requests still in flight."""
        coordinator = _thread_coordinator(gate)
        future = coordinator.submit("slow")
        assert gate.started.wait(timeout=5)

        coordinator.shutdown(wait=False)
        gate.release.set()

        assert isinstance(future.exception(timeout=5), CoordinatorClosed)

    def test_shutdown_is_idempotent(self):
        """Shutting down twice is harmless."""
        coordinator = AnalysisCoordinator(use_workers=False, analyze=_tagged)
        coordinator.shutdown()
        coordinator.shutdown()

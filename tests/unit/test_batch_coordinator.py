"""
Unit tests for the batch coordinator.

Tests cover:
- Chunked parallel execution, the chunk barrier timeout and stragglers
- Sequential execution with per-document failure isolation
- Queue order (priority, then age)
- Cooperative cancellation
- Batch wall-clock ceiling and the batch attempt policy
- BatchCompleted and BatchFailed events
- Version-conflict retries on the batch record
"""

import threading
import time

import pytest

from payslips.batching import BatchCoordinator, FuturesChunkWaiter, chunked
from payslips.processing import DocumentProcessor
from payslips.shared.config import CoordinatorConfig
from payslips.shared.exceptions import (
    BatchTimeoutError,
    ConditionalWriteError,
    ExtractionError,
)
from payslips.shared.models.batches import BatchSettings
from payslips.shared.state_machine import BatchStatus, DocumentStatus
from tests.mocks.fake_collaborators import (
    FakeClock,
    FakeDocumentStore,
    FakeTextExtractor,
    FakeWaiter,
    RecordingNotifier,
    RecordingSleep,
)


@pytest.fixture
def text_extractor(inline_payslip_text):
    return FakeTextExtractor(default_text=inline_payslip_text)


@pytest.fixture
def processor(repository, text_extractor):
    return DocumentProcessor(repository, FakeDocumentStore(), text_extractor)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_coordinator(repository, processor, notifier, sleep, clock):
    """Factory for coordinators wired to the in-memory fakes."""

    def _make(**overrides) -> BatchCoordinator:
        options = {
            "notifier": notifier,
            "config": CoordinatorConfig(),
            "waiter": FakeWaiter(),
            "clock": clock,
            "wall_clock": lambda: 5000.0,
            "sleep": sleep,
        }
        options.update(overrides)
        return BatchCoordinator(repository, processor, **options)

    return _make


@pytest.fixture
def seed_documents(repository, make_document):
    """Create N pending documents doc-1..doc-N, oldest first."""

    def _seed(count: int) -> list[str]:
        ids = [f"doc-{i}" for i in range(1, count + 1)]
        for offset, document_id in enumerate(ids):
            repository.create_document(make_document(document_id, created_at=100.0 + offset))
        return ids

    return _seed


class TestChunked:
    """Tests for queue chunking."""

    def test_last_chunk_may_be_short(self, make_document):
        """Test 7 documents in chunks of 3."""
        documents = [make_document(f"doc-{i}") for i in range(7)]

        assert [len(c) for c in chunked(documents, 3)] == [3, 3, 1]

    def test_empty_queue(self):
        """Test no chunks for an empty queue."""
        assert chunked([], 5) == []


class TestCreateAndCancel:
    """Tests for batch creation and cancellation requests."""

    def test_create_batch_assigns_documents(self, make_coordinator, repository, seed_documents):
        """Test documents join the batch and total_files is fixed."""
        ids = seed_documents(3)
        coordinator = make_coordinator()

        batch = coordinator.create_batch("user-1", "Mei 2024", ids)

        assert batch.status == BatchStatus.PENDING
        assert batch.total_files == 3
        assert [d.document_id for d in repository.list_batch_documents(batch.batch_id)] == ids

    def test_create_batch_rejects_processed_documents(self, make_coordinator, repository, make_document):
        """Test only pending documents can join a batch."""
        repository.create_document(make_document("doc-1", status=DocumentStatus.COMPLETED))
        coordinator = make_coordinator()

        with pytest.raises(ValueError, match="expected pending"):
            coordinator.create_batch("user-1", "Mei 2024", ["doc-1"])

    def test_cancel_pending_batch_never_runs(self, make_coordinator, seed_documents, text_extractor):
        """Test a batch cancelled before its run processes nothing."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch("user-1", "Mei 2024", seed_documents(2))
        coordinator.cancel_batch(batch.batch_id)

        result = coordinator.run(batch.batch_id)

        assert result.status == BatchStatus.CANCELLED
        assert text_extractor.calls == []


class TestParallelExecution:
    """Tests for chunked parallel batches."""

    def test_chunks_follow_max_concurrent(self, make_coordinator, repository, seed_documents, notifier):
        """Test 5 documents with max_concurrent=2 run as chunks [2, 2, 1]."""
        waiter = FakeWaiter()
        coordinator = make_coordinator(waiter=waiter)
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(5),
            BatchSettings(parallel=True, max_concurrent=2),
        )

        result = coordinator.run(batch.batch_id)

        assert waiter.chunk_sizes == [2, 2, 1]
        assert waiter.timeouts == [1800.0] * 3
        assert result.status == BatchStatus.COMPLETED
        assert result.successful_files == 5
        assert result.failed_files == 0
        assert result.started_at == 5000.0
        assert result.completed_at == 5000.0

    def test_chunk_timeout_still_advances(
        self, make_coordinator, repository, seed_documents, text_extractor
    ):
        """Test a chunk-2 timeout is logged and chunk 3 still runs."""
        gate = threading.Event()
        text_extractor.block_until("doc-5.txt", gate)
        # Chunk 2 and the later straggler wait both run out
        waiter = FakeWaiter(timeout_chunks=[2, 4])
        coordinator = make_coordinator(waiter=waiter)
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(7),
            BatchSettings(parallel=True, max_concurrent=3),
        )

        try:
            result = coordinator.run(batch.batch_id)

            assert waiter.chunk_sizes == [3, 3, 1, 1]
            assert result.status == BatchStatus.COMPLETED
            assert result.successful_files == 6
            assert repository.get_document("doc-7").status == DocumentStatus.COMPLETED
            # Still processing, so it is left for reconciliation
            assert repository.get_document("doc-5").status == DocumentStatus.PROCESSING
        finally:
            gate.set()

        deadline = time.monotonic() + 5
        while repository.get_document("doc-5").status != DocumentStatus.COMPLETED:
            assert time.monotonic() < deadline
            time.sleep(0.01)

    def test_requeued_straggler_keeps_batch_open(
        self, make_coordinator, repository, seed_documents, text_extractor
    ):
        """Test a timed-out document waiting for its retry is awaited before completion."""
        naps = []

        def nap(seconds):
            naps.append(seconds)
            time.sleep(0.5)

        text_extractor.fail_with("doc-1.txt", ExtractionError("doc-1.txt", "blurred"), times=1)
        waiter = FakeWaiter(timeout_chunks=[1], straggler_grace=0.2)
        coordinator = make_coordinator(waiter=waiter, sleep=nap)
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(1),
            BatchSettings(parallel=True, max_concurrent=1),
        )

        result = coordinator.run(batch.batch_id)

        assert waiter.chunk_sizes == [1, 1]
        assert naps == [60]
        assert repository.get_document("doc-1").status == DocumentStatus.COMPLETED
        assert result.status == BatchStatus.COMPLETED
        assert result.successful_files == 1
        assert result.failed_files == 0

    def test_finish_never_lowers_counters(self, make_coordinator, repository, seed_documents):
        """Test completion keeps stored counters when a recount comes out lower."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch("user-1", "Mei 2024", seed_documents(2))
        stored = repository.get_batch(batch.batch_id)
        repository.update_batch(
            stored.model_copy(
                update={"status": BatchStatus.PROCESSING, "successful_files": 1, "failed_files": 1}
            )
        )

        result = coordinator._finish(batch.batch_id)

        assert result.status == BatchStatus.COMPLETED
        assert result.processed_files == 2
        assert result.failed_files == 1

    def test_document_failure_uses_attempt_policy(
        self, make_coordinator, repository, seed_documents, text_extractor, sleep
    ):
        """Test a failing document is retried, then counted as failed."""
        text_extractor.fail_with("doc-2.txt", ExtractionError("doc-2.txt", "corrupt"))
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(3),
            BatchSettings(parallel=True, max_concurrent=3),
        )

        result = coordinator.run(batch.batch_id)

        assert result.status == BatchStatus.COMPLETED
        assert result.successful_files == 2
        assert result.failed_files == 1
        assert repository.get_document("doc-2").attempts == 3
        assert sleep.calls == [60, 300]

    def test_batch_completed_event(self, make_coordinator, seed_documents, notifier):
        """Test BatchCompleted carries the final counters."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch("user-1", "Mei 2024", seed_documents(2))

        coordinator.run(batch.batch_id)

        [event] = notifier.of_type("BatchCompleted")
        assert event.batch_id == batch.batch_id
        assert event.name == "Mei 2024"
        assert event.total_files == 2
        assert event.successful_files == 2
        assert event.failed_files == 0


class TestSequentialExecution:
    """Tests for one-at-a-time batches."""

    def test_failed_document_does_not_stop_batch(
        self, make_coordinator, repository, seed_documents, text_extractor
    ):
        """Test document #2 fails while #1, #3 and #4 complete."""
        text_extractor.fail_with("doc-2.txt", ExtractionError("doc-2.txt", "unreadable scan"))
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(4),
            BatchSettings(parallel=False),
        )

        result = coordinator.run(batch.batch_id)

        failed = repository.get_document("doc-2")
        assert failed.status == DocumentStatus.FAILED
        assert "unreadable scan" in failed.error_message
        for document_id in ("doc-1", "doc-3", "doc-4"):
            assert repository.get_document(document_id).status == DocumentStatus.COMPLETED
        assert result.status == BatchStatus.COMPLETED
        assert result.failed_files == 1
        assert result.successful_files == 3

    def test_sequential_does_not_retry(self, make_coordinator, repository, seed_documents, text_extractor, sleep):
        """Test sequential mode makes a single attempt per document."""
        text_extractor.fail_with("doc-1.txt", ExtractionError("doc-1.txt", "corrupt"))
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", seed_documents(1), BatchSettings(parallel=False)
        )

        coordinator.run(batch.batch_id)

        assert repository.get_document("doc-1").attempts == 1
        assert sleep.calls == []

    def test_queue_order_priority_then_age(self, make_coordinator, repository, make_document, text_extractor):
        """Test higher priority first, then oldest first."""
        repository.create_document(make_document("a", created_at=1.0))
        repository.create_document(make_document("b", created_at=2.0, priority=5))
        repository.create_document(make_document("c", created_at=0.5))
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", ["a", "b", "c"], BatchSettings(parallel=False)
        )

        coordinator.run(batch.batch_id)

        assert text_extractor.calls == ["b.txt", "c.txt", "a.txt"]

    def test_completed_batch_rerun_is_noop(self, make_coordinator, seed_documents, text_extractor, notifier):
        """Test running a completed batch again changes nothing."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", seed_documents(2), BatchSettings(parallel=False)
        )
        first = coordinator.run(batch.batch_id)

        second = coordinator.run(batch.batch_id)

        assert second == first
        assert len(text_extractor.calls) == 2
        assert len(notifier.of_type("BatchCompleted")) == 1


class TestCancellation:
    """Tests for cancellation observed at document boundaries."""

    def test_cancel_during_run_stops_at_boundary(
        self, make_coordinator, repository, seed_documents, text_extractor, notifier
    ):
        """Test documents after the cancellation point stay pending."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", seed_documents(4), BatchSettings(parallel=False)
        )
        text_extractor.on_extract("doc-2.txt", lambda: coordinator.cancel_batch(batch.batch_id))

        result = coordinator.run(batch.batch_id)

        assert result.status == BatchStatus.CANCELLED
        assert result.successful_files == 2
        assert repository.get_document("doc-3").status == DocumentStatus.PENDING
        assert repository.get_document("doc-4").status == DocumentStatus.PENDING
        assert notifier.of_type("BatchCompleted") == []

    def test_cancel_between_chunks(self, make_coordinator, repository, seed_documents, text_extractor):
        """Test a parallel batch stops before the next chunk."""
        waiter = FakeWaiter()
        coordinator = make_coordinator(waiter=waiter)
        batch = coordinator.create_batch(
            "user-1",
            "Mei 2024",
            seed_documents(4),
            BatchSettings(parallel=True, max_concurrent=2),
        )
        text_extractor.on_extract("doc-1.txt", lambda: coordinator.cancel_batch(batch.batch_id))

        result = coordinator.run(batch.batch_id)

        assert waiter.chunk_sizes == [2]
        assert result.status == BatchStatus.CANCELLED
        assert result.processed_files == 2


class TestBatchFailure:
    """Tests for the wall-clock ceiling and batch attempts."""

    def test_batch_timeout_marks_failed(self, make_coordinator, repository, seed_documents, text_extractor, clock):
        """Test exceeding the ceiling fails the batch at the next boundary."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", seed_documents(3), BatchSettings(parallel=False)
        )
        text_extractor.on_extract("doc-1.txt", lambda: clock.advance(4000))

        with pytest.raises(BatchTimeoutError):
            coordinator.run(batch.batch_id)

        stored = repository.get_batch(batch.batch_id)
        assert stored.status == BatchStatus.FAILED
        assert "exceeded 3600s" in stored.error_message
        assert stored.successful_files == 1
        assert repository.get_document("doc-2").status == DocumentStatus.PENDING

    def test_retry_after_failure_completes(
        self, make_coordinator, repository, seed_documents, text_extractor, clock, sleep, notifier
    ):
        """Test a failed run is re-attempted and finishes the queue."""
        coordinator = make_coordinator()
        batch = coordinator.create_batch(
            "user-1", "Mei 2024", seed_documents(2), BatchSettings(parallel=False)
        )
        text_extractor.on_extract("doc-1.txt", lambda: clock.advance(4000))

        result = coordinator.run_with_retries(batch.batch_id)

        assert result.status == BatchStatus.COMPLETED
        assert result.successful_files == 2
        assert sleep.calls == [60]
        assert notifier.of_type("BatchFailed") == []
        assert len(notifier.of_type("BatchCompleted")) == 1

    def test_attempts_exhausted_emits_batch_failed(
        self, make_coordinator, repository, seed_documents, text_extractor, clock, sleep, notifier
    ):
        """Test three failed runs emit BatchFailed and re-raise."""
        coordinator = make_coordinator()
        ids = seed_documents(4)
        batch = coordinator.create_batch("user-1", "Mei 2024", ids, BatchSettings(parallel=False))
        for document_id in ids:
            text_extractor.on_extract(f"{document_id}.txt", lambda: clock.advance(4000))

        with pytest.raises(BatchTimeoutError):
            coordinator.run_with_retries(batch.batch_id)

        assert sleep.calls == [60, 300]
        [event] = notifier.of_type("BatchFailed")
        assert event.batch_id == batch.batch_id
        assert event.processed_files == 3
        assert event.total_files == 4
        assert "exceeded" in event.error_message
        assert repository.get_batch(batch.batch_id).status == BatchStatus.FAILED


class ConflictingRepository:
    """Loses the first `conflicts` batch writes to a concurrent writer."""

    def __init__(self, inner, conflicts: int):
        self._inner = inner
        self.conflicts = conflicts
        self.update_calls = 0

    def update_batch(self, batch):
        self.update_calls += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConditionalWriteError("TestPayslipBatches", expected_version=batch.version)
        return self._inner.update_batch(batch)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class TestBatchWrites:
    """Tests for optimistic-lock retries on the batch record."""

    def test_write_succeeds_after_conflicts(self, repository, processor, seed_documents):
        """Test two lost races are retried and the third write lands."""
        ids = seed_documents(1)
        batch = BatchCoordinator(repository, processor).create_batch("user-1", "Mei 2024", ids)
        flaky = ConflictingRepository(repository, conflicts=2)

        cancelled = BatchCoordinator(flaky, processor).cancel_batch(batch.batch_id)

        assert cancelled.status == BatchStatus.CANCELLED
        assert flaky.update_calls == 3

    def test_conflicts_exhaust_attempts(self, repository, processor, seed_documents):
        """Test the conflict propagates once every attempt lost its race."""
        ids = seed_documents(1)
        batch = BatchCoordinator(repository, processor).create_batch("user-1", "Mei 2024", ids)
        flaky = ConflictingRepository(repository, conflicts=5)

        with pytest.raises(ConditionalWriteError):
            BatchCoordinator(flaky, processor).cancel_batch(batch.batch_id)

        assert flaky.update_calls == 3
        assert repository.get_batch(batch.batch_id).status == BatchStatus.PENDING


class TestFuturesChunkWaiter:
    """Tests for the futures-based chunk barrier."""

    def test_settled_futures_return_true(self):
        """Test a chunk whose futures are done settles immediately."""
        from concurrent.futures import Future

        future = Future()
        future.set_result("ok")

        assert FuturesChunkWaiter(poll_interval=0.01).wait([future], timeout=30) is True

    def test_deadline_reached_returns_false(self):
        """Test an unfinished chunk reports a timeout once the clock passes the ceiling."""
        from concurrent.futures import Future

        ticks = iter(range(0, 1000, 10))
        waiter = FuturesChunkWaiter(poll_interval=0.01, clock=lambda: next(ticks))

        assert waiter.wait([Future()], timeout=30) is False

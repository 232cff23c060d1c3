"""
Batch Coordinator

Runs every queued payslip in a batch and finalizes the batch status.

Parallel mode splits the queue into chunks of max_concurrent documents,
dispatches each chunk to a worker pool and waits at a barrier before the
next chunk. Sequential mode processes one document at a time, inline.
Individual document failures never abort the batch; only an error in the
coordinator itself fails it.
"""

import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

from payslips.batching.waiter import ChunkWaiter, FuturesChunkWaiter
from payslips.processing import DocumentProcessor
from payslips.shared.collaborators import Notifier, PayslipRepository
from payslips.shared.config import CoordinatorConfig
from payslips.shared.exceptions import (
    BatchFatalError,
    BatchTimeoutError,
    ConditionalWriteError,
)
from payslips.shared.models.batches import BatchOperation, BatchSettings
from payslips.shared.models.documents import PayslipDocument
from payslips.shared.models.events import BatchCompletedEvent, BatchFailedEvent
from payslips.shared.retry import attempt_policy
from payslips.shared.state_machine import (
    BatchStatus,
    DocumentStatus,
    validate_batch_transition,
)

log = structlog.get_logger()

# Optimistic-lock conflicts on the batch record are retried this many times
BATCH_WRITE_ATTEMPTS = 3


def chunked(documents: Sequence[PayslipDocument], size: int) -> list[list[PayslipDocument]]:
    """Split the ordered queue into fixed-size chunks; the last may be short."""
    return [list(documents[i:i + size]) for i in range(0, len(documents), size)]


def _default_executor(max_workers: int) -> Executor:
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payslip")


class BatchCoordinator:
    """
    Coordinates one batch at a time.

    At most one coordinator may run per batch_id; the task queue enforces
    that, so batch counters are written without extra locking here.
    """

    def __init__(
        self,
        repository: PayslipRepository,
        processor: DocumentProcessor,
        *,
        notifier: Notifier | None = None,
        config: CoordinatorConfig | None = None,
        waiter: ChunkWaiter | None = None,
        executor_factory: Callable[[int], Executor] = _default_executor,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._repository = repository
        self._processor = processor
        self._notifier = notifier
        self._config = config or CoordinatorConfig()
        self._waiter = waiter or FuturesChunkWaiter(self._config.poll_interval_seconds, clock)
        self._executor_factory = executor_factory
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

    # --- Batch lifecycle ---

    def create_batch(
        self,
        owner_id: str,
        name: str,
        document_ids: Sequence[str],
        settings: BatchSettings | None = None,
    ) -> BatchOperation:
        """
        Create a batch over existing pending documents.

        total_files is fixed here and never changes afterwards.
        """
        batch = BatchOperation(
            owner_id=owner_id,
            name=name,
            total_files=len(document_ids),
            settings=settings or BatchSettings(),
            created_at=self._wall_clock(),
        )
        batch = self._repository.create_batch(batch)

        for document_id in document_ids:
            document = self._repository.get_document(document_id)
            if document.status != DocumentStatus.PENDING:
                raise ValueError(
                    f"Document '{document_id}' is {document.status.value}, expected pending"
                )
            self._repository.update_document(
                document.model_copy(update={"batch_id": batch.batch_id})
            )

        log.info(
            "batch_created",
            batch_id=batch.batch_id,
            owner_id=owner_id,
            total_files=batch.total_files,
            parallel=batch.settings.parallel,
            max_concurrent=batch.settings.max_concurrent,
            priority=batch.settings.priority,
        )
        return batch

    def cancel_batch(self, batch_id: str) -> BatchOperation:
        """
        Request cancellation.

        The running coordinator notices at its next chunk or document
        boundary; queued documents stay pending.
        """
        batch = self._mutate_batch(
            batch_id,
            lambda b: self._with_status(b, BatchStatus.CANCELLED, completed_at=self._wall_clock()),
        )
        log.info("batch_cancelled", batch_id=batch_id, processed_files=batch.processed_files)
        return batch

    def run(self, batch_id: str) -> BatchOperation:
        """
        Execute all queued documents of a batch once.

        Returns:
            The final batch record

        Raises:
            BatchFatalError: If the coordinator itself fails (batch -> failed)
        """
        batch = self._repository.get_batch(batch_id)
        if batch.status in (BatchStatus.COMPLETED, BatchStatus.CANCELLED):
            log.info("batch_already_finished", batch_id=batch_id, status=batch.status.value)
            return batch

        batch = self._start(batch_id)
        deadline = self._clock() + self._config.batch_timeout_seconds

        try:
            queue = self._queued_documents(batch_id)
            log.info(
                "batch_processing_started",
                batch_id=batch_id,
                queued=len(queue),
                total_files=batch.total_files,
                parallel=batch.settings.parallel,
                priority=batch.settings.priority,
            )

            if batch.settings.parallel:
                cancelled = self._run_parallel(batch, queue, deadline)
            else:
                cancelled = self._run_sequential(batch, queue, deadline)

            if cancelled:
                return self._refresh_counts(batch_id)

            batch = self._finish(batch_id)
        except Exception as e:
            self._mark_failed(batch_id, e)
            if isinstance(e, BatchFatalError):
                raise
            raise BatchFatalError(batch_id=batch_id, error_message=str(e)) from e

        log.info(
            "batch_completed",
            batch_id=batch_id,
            successful_files=batch.successful_files,
            failed_files=batch.failed_files,
            processing_time=batch.processing_time(),
        )
        self._publish(
            BatchCompletedEvent(
                name=batch.name,
                batch_id=batch.batch_id,
                total_files=batch.total_files,
                successful_files=batch.successful_files,
                failed_files=batch.failed_files,
                processing_time=batch.processing_time(),
            )
        )
        return batch

    def run_with_retries(self, batch_id: str) -> BatchOperation:
        """
        Run the batch under the task-queue attempt policy.

        A failed run is re-attempted after the scheduled backoff. Once the
        attempts are exhausted a BatchFailed event is emitted and the
        error propagates.
        """
        retrying = attempt_policy(
            max_attempts=self._config.max_attempts,
            backoff_seconds=self._config.backoff_seconds,
            retry_on=(BatchFatalError,),
            sleep=self._sleep,
        )
        try:
            return retrying(self.run, batch_id)
        except BatchFatalError as e:
            batch = self._repository.get_batch(batch_id)
            log.error(
                "batch_permanently_failed",
                batch_id=batch_id,
                error=e.error_message,
                processed_files=batch.processed_files,
                total_files=batch.total_files,
            )
            self._publish(
                BatchFailedEvent(
                    name=batch.name,
                    batch_id=batch_id,
                    error_message=e.error_message,
                    processed_files=batch.processed_files,
                    total_files=batch.total_files,
                )
            )
            raise

    # --- Execution modes ---

    def _run_parallel(
        self,
        batch: BatchOperation,
        queue: list[PayslipDocument],
        deadline: float,
    ) -> bool:
        """
        Returns True if the batch was cancelled before the queue drained.

        Documents a timed-out chunk left running are awaited after the last
        chunk. The queue is then read again, so a document that went back
        to pending for a retry never lets the batch complete early.
        """
        size = batch.settings.max_concurrent
        executor = self._executor_factory(size)
        in_flight: dict[str, Future] = {}
        try:
            while queue:
                chunks = chunked(queue, size)
                for number, chunk in enumerate(chunks, start=1):
                    if self._should_stop(batch.batch_id, deadline):
                        return True

                    futures = [
                        executor.submit(self._process_task, document.document_id)
                        for document in chunk
                    ]
                    log.info(
                        "chunk_dispatched",
                        batch_id=batch.batch_id,
                        chunk=number,
                        total_chunks=len(chunks),
                        size=len(chunk),
                    )

                    tasks = [(d.document_id, f) for d, f in zip(chunk, futures)]
                    settled = self._waiter.wait(futures, self._config.chunk_timeout_seconds)
                    if not settled:
                        log.warning(
                            "chunk_timeout",
                            batch_id=batch.batch_id,
                            chunk=number,
                            timeout_seconds=self._config.chunk_timeout_seconds,
                            unsettled=sum(1 for f in futures if not f.done()),
                        )
                    self._log_task_failures(batch.batch_id, tasks)
                    in_flight.update((document_id, f) for document_id, f in tasks if not f.done())
                    self._refresh_counts(batch.batch_id)

                if self._await_stragglers(batch.batch_id, in_flight, deadline):
                    return True
                queue = [
                    document
                    for document in self._queued_documents(batch.batch_id)
                    if document.document_id not in in_flight
                ]
        finally:
            executor.shutdown(wait=False)
        return False

    def _await_stragglers(
        self,
        batch_id: str,
        in_flight: dict[str, Future],
        deadline: float,
    ) -> bool:
        """
        Wait for tasks left running by timed-out chunks.

        Waiting goes on while any of their documents sits in the queue
        between attempts. Documents still processing after a full wait are
        left for reconciliation. Returns True on cancellation.
        """
        while in_flight:
            if self._should_stop(batch_id, deadline):
                return True
            log.info("waiting_for_stragglers", batch_id=batch_id, in_flight=len(in_flight))

            settled = self._waiter.wait(list(in_flight.values()), self._config.chunk_timeout_seconds)
            done = [(document_id, f) for document_id, f in in_flight.items() if f.done()]
            for document_id, _future in done:
                del in_flight[document_id]
            self._log_task_failures(batch_id, done)
            self._refresh_counts(batch_id)

            if settled:
                continue
            requeued = [
                d.document_id
                for d in self._repository.list_batch_documents(batch_id, status=DocumentStatus.PENDING)
                if d.document_id in in_flight
            ]
            if not requeued:
                log.warning(
                    "stragglers_left_for_reconciliation",
                    batch_id=batch_id,
                    document_ids=sorted(in_flight),
                )
                return False
        return False

    def _run_sequential(
        self,
        batch: BatchOperation,
        queue: list[PayslipDocument],
        deadline: float,
    ) -> bool:
        """Returns True if the batch was cancelled before the queue drained."""
        for document in queue:
            if self._should_stop(batch.batch_id, deadline):
                return True
            try:
                self._processor.process(document.document_id, raise_on_error=True)
            except Exception as e:
                log.warning(
                    "batch_document_failed",
                    batch_id=batch.batch_id,
                    document_id=document.document_id,
                    error=str(e),
                )
            self._refresh_counts(batch.batch_id)
        return False

    def _process_task(self, document_id: str) -> PayslipDocument:
        return self._processor.process_with_attempts(document_id, self._config, sleep=self._sleep)

    def _log_task_failures(self, batch_id: str, tasks: Iterable[tuple[str, Future]]) -> None:
        for document_id, future in tasks:
            if future.done() and future.exception() is not None:
                log.warning(
                    "batch_document_failed",
                    batch_id=batch_id,
                    document_id=document_id,
                    error=str(future.exception()),
                )

    # --- Boundaries ---

    def _should_stop(self, batch_id: str, deadline: float) -> bool:
        """
        Cooperative checks between units of work.

        Returns True on cancellation; raises once the wall-clock ceiling passes.
        """
        current = self._repository.get_batch(batch_id)
        if current.status == BatchStatus.CANCELLED:
            log.info("batch_cancellation_observed", batch_id=batch_id)
            return True
        if self._clock() > deadline:
            raise BatchTimeoutError(
                batch_id=batch_id,
                timeout_seconds=self._config.batch_timeout_seconds,
            )
        return False

    def _queued_documents(self, batch_id: str) -> list[PayslipDocument]:
        """Pending documents, highest priority first, then oldest first."""
        documents = self._repository.list_batch_documents(batch_id, status=DocumentStatus.PENDING)
        return sorted(documents, key=lambda d: d.queue_key)

    # --- Batch record updates ---

    def _start(self, batch_id: str) -> BatchOperation:
        def start(batch: BatchOperation) -> BatchOperation:
            # A run interrupted mid-way leaves the batch processing
            if batch.status == BatchStatus.PROCESSING:
                return batch
            return self._with_status(
                batch,
                BatchStatus.PROCESSING,
                started_at=batch.started_at or self._wall_clock(),
                completed_at=None,
                error_message=None,
            )

        return self._mutate_batch(batch_id, start)

    def _finish(self, batch_id: str) -> BatchOperation:
        counts = self._count_documents(batch_id)

        def finish(batch: BatchOperation) -> BatchOperation:
            return self._with_status(
                batch,
                BatchStatus.COMPLETED,
                completed_at=self._wall_clock(),
                **self._forward_counts(batch, counts),
            )

        return self._mutate_batch(batch_id, finish)

    def _mark_failed(self, batch_id: str, error: Exception) -> None:
        log.error(
            "batch_failed",
            batch_id=batch_id,
            error_type=type(error).__name__,
            error=str(error),
        )

        def fail(batch: BatchOperation) -> BatchOperation:
            if not validate_batch_transition(batch.status, BatchStatus.FAILED, raise_on_invalid=False):
                return batch
            return batch.model_copy(
                update={
                    "status": BatchStatus.FAILED,
                    "error_message": str(error),
                    "completed_at": self._wall_clock(),
                }
            )

        self._mutate_batch(batch_id, fail)

    def _refresh_counts(self, batch_id: str) -> BatchOperation:
        """Recompute counters from document states and persist them."""
        counts = self._count_documents(batch_id)

        def refresh(batch: BatchOperation) -> BatchOperation:
            counts_forward = self._forward_counts(batch, counts)
            if not counts_forward:
                return batch
            return batch.model_copy(update=counts_forward)

        batch = self._mutate_batch(batch_id, refresh)
        log.info(
            "batch_progress",
            batch_id=batch_id,
            processed_files=batch.processed_files,
            total_files=batch.total_files,
            progress_percentage=batch.progress_percentage,
        )
        return batch

    def _count_documents(self, batch_id: str) -> dict[str, int]:
        documents = self._repository.list_batch_documents(batch_id)
        return {
            "successful_files": sum(1 for d in documents if d.status == DocumentStatus.COMPLETED),
            "failed_files": sum(1 for d in documents if d.status == DocumentStatus.FAILED),
        }

    @staticmethod
    def _forward_counts(batch: BatchOperation, counts: dict[str, int]) -> dict[str, int]:
        """
        Recomputed counters, or nothing when they would lower processed_files.

        A requeued document leaves the failed count before its next attempt
        lands, so a recount can briefly run behind the stored counters.
        """
        processed = counts["successful_files"] + counts["failed_files"]
        if processed < batch.processed_files:
            log.warning(
                "processed_count_regressed",
                batch_id=batch.batch_id,
                stored=batch.processed_files,
                recomputed=processed,
            )
            return {}
        return counts

    def _mutate_batch(
        self,
        batch_id: str,
        change: Callable[[BatchOperation], BatchOperation],
    ) -> BatchOperation:
        """Read-modify-write, re-read and retried on version conflicts."""

        def write() -> BatchOperation:
            current = self._repository.get_batch(batch_id)
            updated = change(current)
            if updated is current:
                return current
            return self._repository.update_batch(updated)

        def on_conflict(retry_state: RetryCallState) -> None:
            log.info("batch_write_conflict", batch_id=batch_id, attempt=retry_state.attempt_number)

        retrying = Retrying(
            stop=stop_after_attempt(BATCH_WRITE_ATTEMPTS),
            retry=retry_if_exception_type(ConditionalWriteError),
            before_sleep=on_conflict,
            reraise=True,
        )
        return retrying(write)

    @staticmethod
    def _with_status(batch: BatchOperation, status: BatchStatus, **changes) -> BatchOperation:
        validate_batch_transition(batch.status, status)
        return batch.model_copy(update={"status": status, **changes})

    def _publish(self, event) -> None:
        if self._notifier is None:
            return
        self._notifier.publish(event)

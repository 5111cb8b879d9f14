"""Bounded-memory row transfer from source to target."""

import logging
import queue
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, List, Optional

from .timeouts import TimeoutRunner
from ..exceptions import (
    DataWriteFailure,
    MigrationCancelled,
    MigrationProgressError,
    OperationTimeout,
    SourceReadError,
)
from ..extractors.base import SourceConnector
from ..loaders.base import TargetConnector
from ..models.migration import ExecutionResult, utcnow
from ..models.record import MigrationResult, RowBatch
from ..models.schema import TableIdentifier

logger = logging.getLogger(__name__)


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Upper-case column names, rejecting names that collide once upper-cased."""
    normalized = {}
    for key, value in row.items():
        name = str(key).upper()
        if name in normalized:
            raise SourceReadError(f"Source columns collide on upper-case name {name}")
        normalized[name] = value
    return normalized


class _TransferState:
    """Queue, counters and stop signals of one ``migrate`` call."""

    def __init__(self, queue_size: int, cancel_event: Optional[threading.Event]):
        self.batch_queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self.cancel_event = cancel_event or threading.Event()
        self.failed = threading.Event()
        self.error: Optional[MigrationProgressError] = None
        self.read_complete = False

        self.rows_read = 0
        self.batches_produced = 0
        self.rows_written = 0
        self.batches_written = 0
        self.batch_retries = 0
        self._lock = threading.Lock()

    def stopped(self) -> bool:
        return self.failed.is_set() or self.cancel_event.is_set()

    def fail(self, error: MigrationProgressError) -> None:
        """Thread-safe error setter; the first error wins."""
        with self._lock:
            if self.error is None:
                self.error = error
                self.failed.set()

    def record_read(self, rows: int) -> None:
        with self._lock:
            self.rows_read += rows
            self.batches_produced += 1

    def record_write(self, rows: int) -> None:
        with self._lock:
            self.rows_written += rows
            self.batches_written += 1

    def record_retry(self) -> None:
        with self._lock:
            self.batch_retries += 1


class BatchDataMover:
    """
    Streams rows from a source connector into a target connector.

    One reader thread fills a bounded queue with RowBatches; a fixed pool of
    writer threads drains it. The reader blocks while the queue is full, so at
    most ``queue_size + writer_count + 1`` batches are held in memory.

    Batches are written in any order. A failed batch is retried as a whole;
    once its retries are exhausted the transfer stops and ``DataWriteFailure``
    reports what was already written. Nothing is rolled back.
    """

    # Sentinel value to signal end of data
    _DONE = object()

    # Queue polling interval while watching for stop signals
    _POLL_INTERVAL = 0.1

    def __init__(
        self,
        source: SourceConnector,
        target: TargetConnector,
        chunk_size: int = 5000,
        queue_size: int = 4,
        writer_count: int = 2,
        max_write_retries: int = 2,
        backoff_factor: float = 1.0,
        write_timeout: Optional[float] = 300.0,
        cancel_grace: Optional[float] = None,
    ):
        """
        Initialize the data mover.

        Args:
            source: Connector rows are read from
            target: Connector batches are written to
            chunk_size: Maximum rows per batch
            queue_size: Maximum batches buffered between reader and writers
            writer_count: Number of concurrent writer threads
            max_write_retries: Retries per batch after the first failure
            backoff_factor: Seconds of delay per retry number (linear)
            write_timeout: Timeout of a single batch write
            cancel_grace: How long to wait for a timed-out write to return after
                cancelling it; None waits until it returns
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if queue_size < 1 or writer_count < 1:
            raise ValueError("queue_size and writer_count must be at least 1")
        if max_write_retries < 0:
            raise ValueError("max_write_retries cannot be negative")

        self.source = source
        self.target = target
        self.chunk_size = chunk_size
        self.queue_size = queue_size
        self.writer_count = writer_count
        self.max_write_retries = max_write_retries
        self.backoff_factor = backoff_factor
        self.write_timeout = write_timeout
        self.cancel_grace = cancel_grace

    def migrate(
        self,
        identifier: TableIdentifier,
        chunk_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationResult:
        """
        Copy every source row into the target table.

        Args:
            identifier: Source and target table names
            chunk_size: Overrides the configured batch size for this call
            cancel_event: Set by the caller to stop the transfer early

        Returns:
            MigrationResult with ``rows_written == rows_read``

        Raises:
            SourceReadError: Reading the source failed
            DataWriteFailure: A batch failed after all retries
            MigrationCancelled: ``cancel_event`` was set before completion
        """
        chunk_size = chunk_size or self.chunk_size
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        source_table = identifier.source_qualified_name
        target_table = identifier.target_qualified_name
        state = _TransferState(self.queue_size, cancel_event)
        run_id = uuid.uuid4().hex
        runner = TimeoutRunner(self.writer_count, name="tablemigrate-write")
        result = MigrationResult(table_name=target_table, started_at=utcnow())

        logger.info(
            f"Moving rows {source_table} -> {target_table} "
            f"(chunk_size={chunk_size}, writers={self.writer_count})"
        )

        reader = threading.Thread(
            target=self._reader_thread,
            args=(state, source_table, target_table, chunk_size, run_id),
            name=f"tablemigrate-reader-{target_table}",
            daemon=True,
        )
        reader.start()

        with ThreadPoolExecutor(
            max_workers=self.writer_count,
            thread_name_prefix="tablemigrate-writer",
        ) as executor:
            futures = [
                executor.submit(self._writer_thread, state, runner, target_table, writer_id)
                for writer_id in range(self.writer_count)
            ]
            for future in futures:
                future.result()

        reader.join()
        runner.shutdown()

        result.rows_read = state.rows_read
        result.rows_written = state.rows_written
        result.batches_produced = state.batches_produced
        result.batches_written = state.batches_written
        result.batch_retries = state.batch_retries
        result.completed_at = utcnow()

        if state.error is not None:
            error = state.error
            error.rows_written = result.rows_written
            error.batches_written = result.batches_written
            error.result = result
            result.errors.append(error.to_dict())
            logger.error(f"Data move for {target_table} failed: {error.message}")
            raise error

        finished = state.read_complete and state.batches_written == state.batches_produced
        if state.cancel_event.is_set() and not finished:
            result.cancelled = True
            error = MigrationCancelled(
                f"Data move for {target_table} cancelled after {result.rows_written} rows",
                rows_written=result.rows_written,
                batches_written=result.batches_written,
            )
            error.result = result
            result.errors.append(error.to_dict())
            logger.warning(error.message)
            raise error

        logger.info(
            f"Moved {result.rows_written} rows in {result.batches_written} batches "
            f"to {target_table} ({result.batch_retries} retries)"
        )
        return result

    def _put(self, state: _TransferState, item: Any) -> bool:
        """Put with backpressure; gives up once the transfer is stopping."""
        while True:
            try:
                state.batch_queue.put(item, timeout=self._POLL_INTERVAL)
                return True
            except queue.Full:
                if state.stopped():
                    return False

    def _reader_thread(
        self,
        state: _TransferState,
        source_table: str,
        target_table: str,
        chunk_size: int,
        run_id: str,
    ) -> None:
        """Read source rows into batches and queue them."""
        rows: List[Dict[str, Any]] = []
        batch_number = 0

        try:
            for row in self.source.read_source_rows(source_table):
                if state.stopped():
                    break
                rows.append(normalize_row(row))

                if len(rows) >= chunk_size:
                    batch_number += 1
                    if not self._queue_batch(state, batch_number, target_table, rows, chunk_size, run_id):
                        break
                    rows = []
            else:
                if rows and not state.stopped():
                    batch_number += 1
                    self._queue_batch(state, batch_number, target_table, rows, chunk_size, run_id)
                state.read_complete = not state.stopped()

        except SourceReadError as e:
            state.fail(e)
        except Exception as e:
            logger.error(f"Reader for {source_table} failed: {e}")
            state.fail(SourceReadError(
                f"Reading {source_table} failed: {e}",
                details={"table": source_table},
            ))
        finally:
            for _ in range(self.writer_count):
                if not self._put(state, self._DONE):
                    break

    def _queue_batch(
        self,
        state: _TransferState,
        batch_number: int,
        target_table: str,
        rows: List[Dict[str, Any]],
        chunk_size: int,
        run_id: str,
    ) -> bool:
        batch = RowBatch(
            batch_number=batch_number,
            table_name=target_table,
            rows=rows,
            max_size=chunk_size,
            run_id=run_id,
        )
        if not self._put(state, batch):
            return False
        state.record_read(len(batch))
        logger.debug(f"Queued batch {batch_number} ({len(batch)} rows)")
        return True

    def _writer_thread(
        self,
        state: _TransferState,
        runner: TimeoutRunner,
        target_table: str,
        writer_id: int,
    ) -> None:
        """Drain the queue until the end sentinel or a stop signal."""
        while True:
            try:
                item = state.batch_queue.get(timeout=self._POLL_INTERVAL)
            except queue.Empty:
                if state.stopped():
                    return
                continue

            if item is self._DONE or state.stopped():
                return

            self._write_batch(state, runner, target_table, item)
            logger.debug(f"Writer {writer_id} finished batch {item.batch_number}")

    def _write_batch(
        self,
        state: _TransferState,
        runner: TimeoutRunner,
        target_table: str,
        batch: RowBatch,
    ) -> None:
        """
        Write one batch, retrying the same batch with linear backoff.

        A timed-out write is cancelled on the target and awaited before any
        retry, so a write that commits late is counted once and never repeated.
        """
        attempts = self.max_write_retries + 1
        last_error = ""

        for attempt in range(1, attempts + 1):
            try:
                outcome = runner.call(
                    self.target.write_batch,
                    self.write_timeout,
                    target_table,
                    batch,
                    description=f"write of batch {batch.batch_number}",
                )
            except OperationTimeout as e:
                outcome = self._settle_timed_out_write(target_table, batch, e)
                if outcome is None:
                    state.fail(DataWriteFailure(
                        f"Batch {batch.batch_number} timed out and its write did not finish "
                        f"within {self.cancel_grace}s of being cancelled",
                        batch_number=batch.batch_number,
                        attempts=attempt,
                        details={"table": target_table, "rows": len(batch)},
                    ))
                    return
            except Exception as e:
                outcome = ExecutionResult.failure(str(e))

            if outcome.ok:
                state.record_write(len(batch))
                return
            last_error = outcome.error_message or "unknown write failure"

            logger.warning(
                f"Batch {batch.batch_number} write attempt {attempt}/{attempts} failed: {last_error}"
            )

            if attempt < attempts:
                state.record_retry()
                if not self._backoff(state, self.backoff_factor * attempt):
                    return

        state.fail(DataWriteFailure(
            f"Batch {batch.batch_number} failed after {attempts} attempts: {last_error}",
            batch_number=batch.batch_number,
            attempts=attempts,
            details={"table": target_table, "rows": len(batch)},
        ))

    def _settle_timed_out_write(
        self,
        target_table: str,
        batch: RowBatch,
        timeout: OperationTimeout,
    ) -> Optional[ExecutionResult]:
        """
        Cancel a timed-out write and wait for its final outcome.

        Returns the write's own result (success when it committed late), a
        failure carrying the timeout, or None when it is still running after
        ``cancel_grace`` seconds.
        """
        try:
            self.target.cancel_write(target_table, batch)
        except Exception as e:
            logger.warning(f"Could not cancel write of batch {batch.batch_number}: {e}")

        pending = timeout.pending
        if pending is None:
            return ExecutionResult.failure(timeout.message)

        try:
            outcome = pending.result(timeout=self.cancel_grace)
        except Exception as e:
            if isinstance(e, FutureTimeout) and not pending.done():
                return None
            return ExecutionResult.failure(f"{timeout.message}; write then failed: {e}")

        if outcome.ok:
            logger.warning(f"Batch {batch.batch_number} committed after its write timed out")
            return outcome
        return ExecutionResult.failure(f"{timeout.message}; {outcome.error_message}")

    def _backoff(self, state: _TransferState, delay: float) -> bool:
        """Sleep between retries; False when the transfer stops meanwhile."""
        deadline = time.monotonic() + delay
        while not state.stopped():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            time.sleep(min(self._POLL_INTERVAL, remaining))
        return False

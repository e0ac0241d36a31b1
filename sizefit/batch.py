"""Batch processing: fan images out to worker threads and aggregate results."""

import logging
import os
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .errors import CompressionCancelled, CompressionError, ValidationError
from .processor import CompressionOrchestrator, JobOutcome, JobState
from .request import BYTES_PER_MB, CompressionRequest, validate_request
from .settings import EngineSettings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageJob:
    """One input image: a name for reporting and its raw bytes."""
    filename: str
    data: bytes


@dataclass(frozen=True)
class BatchAnalytics:
    """Aggregates over the jobs that finished.

    Attributes:
        total_images: Jobs in the batch
        succeeded: Jobs that reached DONE
        failed: Jobs that ended FAILED
        total_original_size_bytes: Input size of the successful jobs
        total_processed_size_bytes: Output size of the successful jobs
        average_compression_ratio: Mean original/achieved over successful jobs
        total_iterations: Trial encodes across successful jobs
        strategies_used: processing_strategy -> job count
        unreachable: Successful jobs that could not meet the target
    """
    total_images: int
    succeeded: int
    failed: int
    total_original_size_bytes: int
    total_processed_size_bytes: int
    average_compression_ratio: float
    total_iterations: int
    strategies_used: Dict[str, int] = field(default_factory=dict)
    unreachable: int = 0

    @property
    def saved_bytes(self) -> int:
        return max(0, self.total_original_size_bytes - self.total_processed_size_bytes)

    @property
    def saved_percent(self) -> float:
        if self.total_original_size_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.total_original_size_bytes) * 100.0

    @property
    def total_original_size_mb(self) -> float:
        return self.total_original_size_bytes / BYTES_PER_MB

    @property
    def total_processed_size_mb(self) -> float:
        return self.total_processed_size_bytes / BYTES_PER_MB


def summarize(outcomes: Sequence[JobOutcome]) -> BatchAnalytics:
    """Aggregate job outcomes into batch analytics."""
    results = [o.result for o in outcomes if o.ok]
    strategies = Counter(r.analytics.processing_strategy for r in results)
    ratios = [r.compression_ratio for r in results]

    return BatchAnalytics(
        total_images=len(outcomes),
        succeeded=len(results),
        failed=len(outcomes) - len(results),
        total_original_size_bytes=sum(r.original_size_bytes for r in results),
        total_processed_size_bytes=sum(r.achieved_size_bytes for r in results),
        average_compression_ratio=sum(ratios) / len(ratios) if ratios else 0.0,
        total_iterations=sum(r.analytics.iterations_required for r in results),
        strategies_used=dict(sorted(strategies.items())),
        unreachable=sum(1 for r in results if r.unreachable),
    )


@dataclass(frozen=True)
class BatchResult:
    """Index-aligned outcomes for a batch.

    A failed image does not invalidate the batch; success is True only when
    every image reached DONE.
    """
    outcomes: List[JobOutcome]
    analytics: BatchAnalytics
    processing_time_ms: int
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and all(o.ok for o in self.outcomes)

    @property
    def partial(self) -> bool:
        """Some, but not all, images succeeded."""
        return not self.success and any(o.ok for o in self.outcomes)

    @property
    def message(self) -> str:
        total = len(self.outcomes)
        done = self.analytics.succeeded
        if self.success:
            message = f"Successfully processed {total} image(s)"
        elif done == 0:
            message = f"All {total} image(s) failed"
        else:
            message = f"Processed {done} of {total} image(s); {total - done} failed"
        if self.cancelled:
            message += " (batch cancelled)"
        if self.analytics.unreachable:
            message += f"; {self.analytics.unreachable} could not reach the target size"
        return message


class BatchCoordinator:
    """Runs one orchestrator per image on a bounded thread pool.

    Each worker writes only its own result slot. Pillow releases the GIL
    while encoding and resampling, so threads scale across cores without
    copying pixel buffers between processes.
    """

    def __init__(
        self,
        request: CompressionRequest,
        settings: Optional[EngineSettings] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ):
        """
        Args:
            request: Configuration shared by every image
            settings: Engine settings (defaults to EngineSettings())
            cancel_event: Set to abort the batch between trial encodes
            progress_callback: Called as (completed, total, filename) after each image
        """
        self.request = request
        self.settings = settings or EngineSettings()
        self.cancel_event = cancel_event or threading.Event()
        self.progress_callback = progress_callback

    def cancel(self) -> None:
        """Abort the batch. In-flight trials finish; no new ones start."""
        self.cancel_event.set()

    def validate(self, jobs: Sequence[ImageJob]) -> None:
        """Reject the batch before any job starts.

        Raises:
            ValidationError: On a bad request or batch size
        """
        validate_request(self.request, self.settings)
        if not jobs:
            raise ValidationError("At least one image is required")
        if len(jobs) > self.settings.max_batch_size:
            raise ValidationError(
                f"Maximum {self.settings.max_batch_size} files allowed, got {len(jobs)}"
            )
        for job in jobs:
            if not job.data:
                raise ValidationError(f"{job.filename} is empty")

    def worker_count(self, batch_size: int) -> int:
        limit = self.settings.max_workers or os.cpu_count() or 1
        return max(1, min(batch_size, limit))

    def run(self, jobs: Sequence[ImageJob]) -> BatchResult:
        """Process every job and return index-aligned outcomes.

        Raises:
            ValidationError: If the request or batch is invalid (nothing runs)
        """
        jobs = list(jobs)
        self.validate(jobs)

        start_time = time.time()
        total = len(jobs)
        slots: List[Optional[JobOutcome]] = [None] * total
        completed = 0

        logger.info(
            f"Batch of {total} image(s): target {self.request.target_size_mb:.3f} MB, "
            f"{self.request.output_format.value}, {self.request.compression_strategy.value} strategy"
        )

        with ThreadPoolExecutor(max_workers=self.worker_count(total)) as executor:
            futures = {
                executor.submit(self._run_job, index, job, slots): index
                for index, job in enumerate(jobs)
            }
            for future in as_completed(futures):
                index = futures[future]
                # _run_job records its own outcome; this only surfaces bugs
                future.result()
                completed += 1
                if self.progress_callback:
                    self.progress_callback(completed, total, jobs[index].filename)

        outcomes = [slot for slot in slots if slot is not None]
        processing_time_ms = int((time.time() - start_time) * 1000)
        result = BatchResult(
            outcomes=outcomes,
            analytics=summarize(outcomes),
            processing_time_ms=processing_time_ms,
            cancelled=self.cancel_event.is_set(),
        )
        logger.info(f"{result.message} in {processing_time_ms} ms")
        return result

    def _run_job(self, index: int, job: ImageJob, slots: List[Optional[JobOutcome]]) -> None:
        if self.cancel_event.is_set():
            error = CompressionCancelled("Batch cancelled before this image started")
            slots[index] = self._failed(index, job, error)
            return

        orchestrator = CompressionOrchestrator(self.request, self.settings, self.cancel_event)
        try:
            slots[index] = orchestrator.process(job.data, job.filename, index)
        except Exception as e:
            # Track failed files and continue processing others
            logger.exception(f"{job.filename}: unexpected error")
            error = CompressionError(f"Unexpected error: {e}")
            slots[index] = self._failed(index, job, error)

    @staticmethod
    def _failed(index: int, job: ImageJob, error: CompressionError) -> JobOutcome:
        return JobOutcome(
            index=index,
            filename=job.filename,
            original_size_bytes=len(job.data),
            state=JobState.FAILED,
            error=error,
        )


def process_batch(
    jobs: Sequence[ImageJob],
    request: CompressionRequest,
    settings: Optional[EngineSettings] = None,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchResult:
    """Compress a batch of images with one shared request."""
    coordinator = BatchCoordinator(
        request,
        settings=settings,
        cancel_event=cancel_event,
        progress_callback=progress_callback,
    )
    return coordinator.run(jobs)

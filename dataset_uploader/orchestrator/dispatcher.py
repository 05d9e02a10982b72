from typing import Callable, List, Optional, Sequence, Tuple
import asyncio
import logging

from ..errors import DispatcherPreconditionError, EmptyBatchError
from ..models import BatchResult, ErrorKind, StagedFile, UploadOutcome
from ..protocols import UploadOperation
from ..utils.events import EventEmitter, FileProgress
logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag for a dispatch run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


class UploadDispatcher:
    """
    Runs a batch of uploads with a bounded number in flight.

    - Outcomes come back in input order, whatever order uploads finish in
    - A failing file never cancels or blocks the others
    - Cancellation stops new uploads from starting; running ones finish
    """

    def __init__(self):
        self._events = EventEmitter()

    # Event subscription methods
    def on_file_start(self, callback: Callable[[StagedFile], None]):
        """Called when a file starts uploading. Receives StagedFile."""
        self._events.on("file_start", callback)

    def on_file_progress(self, callback: Callable[[StagedFile, FileProgress], None]):
        """Called when file upload progress updates. Receives StagedFile and FileProgress."""
        self._events.on("file_progress", callback)

    def on_file_complete(self, callback: Callable[[UploadOutcome], None]):
        """Called when a file uploads successfully. Receives UploadOutcome."""
        self._events.on("file_complete", callback)

    def on_file_fail(self, callback: Callable[[UploadOutcome], None]):
        """Called when a file fails. Receives UploadOutcome."""
        self._events.on("file_fail", callback)

    async def run(
        self,
        files: Sequence[StagedFile],
        concurrency_limit: int,
        upload: UploadOperation,
        on_progress: Optional[Callable[[StagedFile, float], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """
        Upload every file and return one outcome per file, in input order.

        Raises:
            EmptyBatchError: ``files`` is empty; ``upload`` is never called
            DispatcherPreconditionError: ``concurrency_limit`` is not a positive int
        """
        if isinstance(concurrency_limit, bool) or not isinstance(concurrency_limit, int) or concurrency_limit < 1:
            raise DispatcherPreconditionError(
                f"concurrency_limit must be a positive integer, got {concurrency_limit!r}"
            )
        files = tuple(files)
        if not files:
            raise EmptyBatchError("no files staged for upload")

        logger.info(f"Starting upload: {len(files)} files (max {concurrency_limit} parallel)")

        semaphore = asyncio.Semaphore(concurrency_limit)
        outcomes: List[Optional[UploadOutcome]] = [None] * len(files)

        tasks = [
            asyncio.create_task(
                self._upload_single_file(
                    file=file,
                    index=idx,
                    total_files=len(files),
                    semaphore=semaphore,
                    upload=upload,
                    on_progress=on_progress,
                    cancellation=cancellation,
                )
            )
            for idx, file in enumerate(files)
        ]

        try:
            for task in asyncio.as_completed(tasks):
                index, outcome = await task
                outcomes[index] = outcome
        except asyncio.CancelledError:
            await self._cancel_remaining_tasks(tasks)
            raise

        result = BatchResult(outcomes=tuple(outcomes))
        logger.info(
            f"Batch complete: {len(result.succeeded_urls)} successful, {len(result.failed)} failed"
        )
        return result

    async def _upload_single_file(
        self,
        file: StagedFile,
        index: int,
        total_files: int,
        semaphore: asyncio.Semaphore,
        upload: UploadOperation,
        on_progress: Optional[Callable[[StagedFile, float], None]],
        cancellation: Optional[CancellationToken],
    ) -> Tuple[int, UploadOutcome]:
        """Upload one file under the semaphore and capture any failure as data."""
        async with semaphore:
            if cancellation is not None and cancellation.is_cancelled:
                logger.info(f"[{index + 1}/{total_files}] Skipped (cancelled): {file.name}")
                outcome = UploadOutcome.fail(file, ErrorKind.CANCELLED, "Upload cancelled")
                await self._events.emit("file_fail", outcome)
                return index, outcome

            logger.info(f"[{index + 1}/{total_files}] Uploading: {file.name} ({file.size_bytes} bytes)")
            await self._events.emit("file_start", file)

            try:
                outcome = await upload(file, self._create_progress_tracker(file, on_progress))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error_msg = str(e) or f"{type(e).__name__}"
                logger.error(f"[{index + 1}/{total_files}] Error uploading {file.name}: {error_msg}")
                outcome = UploadOutcome.fail(file, ErrorKind.UNKNOWN, error_msg)

            status = "✓ Success" if outcome.success else "✗ Failed"
            logger.info(f"[{index + 1}/{total_files}] {status}: {file.name}")

            event = "file_complete" if outcome.success else "file_fail"
            await self._events.emit(event, outcome)
            return index, outcome

    def _create_progress_tracker(
        self,
        file: StagedFile,
        on_progress: Optional[Callable[[StagedFile, float], None]],
    ) -> Callable[[float], None]:
        """Create a progress callback that forwards one file's percentages."""
        progress = FileProgress(filename=file.name, total_bytes=file.size_bytes, status="uploading")

        def track_progress(percent: float) -> None:
            percent = min(max(float(percent), 0.0), 100.0)
            progress.percent = percent
            progress.bytes_uploaded = int(file.size_bytes * percent / 100)
            if percent >= 100:
                progress.status = "completed"
            logger.debug(f"{file.name}: {percent:.1f}%")
            if on_progress:
                on_progress(file, percent)
            self._events.emit_nowait("file_progress", file, progress)

        return track_progress

    async def _cancel_remaining_tasks(self, tasks: List[asyncio.Task]) -> None:
        """Cancel all remaining tasks gracefully."""
        for task in tasks:
            if not task.done():
                task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

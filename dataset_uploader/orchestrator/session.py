"""
Upload session state machine.

``transition`` is a pure function from (state, command) to a Transition that
tells the caller which side effects to apply. ``UploadSession`` owns the
mutable pieces (staged files, timers, the running dispatch) and applies them.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Sequence, Set, Tuple, Union
import asyncio
import itertools
import logging
import time

from ..errors import DispatcherPreconditionError, InvalidTransitionError
from ..models import BatchResult, Notification, StagedFile
from ..protocols import UploadOperation
from ..utils.events import EventEmitter, FileProgress
from .accumulator import FileAccumulator
from .aggregator import UPLOAD_ERROR_MESSAGE, BatchResultAggregator, BatchVerdict
from .dispatcher import CancellationToken, UploadDispatcher

logger = logging.getLogger(__name__)

FILES_ADDED_MESSAGE = "Files added to queue"
EMPTY_SUBMIT_MESSAGE = "Please add at least one file"


class SessionPhase(Enum):
    """Phase of the upload session."""
    IDLE = "idle"
    STAGING = "staging"
    UPLOADING = "uploading"


@dataclass(frozen=True)
class SessionState:
    modal_open: bool = False
    uploading: bool = False
    notification: Optional[Notification] = None
    uploaded_urls: Tuple[str, ...] = ()

    @property
    def phase(self) -> SessionPhase:
        if self.uploading:
            return SessionPhase.UPLOADING
        if self.modal_open:
            return SessionPhase.STAGING
        return SessionPhase.IDLE


# Commands

@dataclass(frozen=True)
class OpenModal:
    pass


@dataclass(frozen=True)
class CloseModal:
    force: bool = False


@dataclass(frozen=True)
class AddFiles:
    files: Tuple[StagedFile, ...]


@dataclass(frozen=True)
class Submit:
    staged_count: int


@dataclass(frozen=True)
class UploadFinished:
    batch: BatchResult
    verdict: BatchVerdict


@dataclass(frozen=True)
class UploadAborted:
    error: str = ""


@dataclass(frozen=True)
class Notify:
    notification: Notification


@dataclass(frozen=True)
class ExpireNotification:
    notification_id: int


Command = Union[
    OpenModal, CloseModal, AddFiles, Submit,
    UploadFinished, UploadAborted, Notify, ExpireNotification,
]


@dataclass(frozen=True)
class Transition:
    """New state plus the side effects the caller must apply."""
    state: SessionState
    notice: Optional[Notification] = None
    stage_files: Tuple[StagedFile, ...] = ()
    start_upload: bool = False
    clear_staged: bool = False


def transition(state: SessionState, command: Command) -> Transition:
    """
    Compute the next session state for a command.

    Raises:
        InvalidTransitionError: the command is not allowed in ``state``
    """
    if isinstance(command, OpenModal):
        return Transition(replace(state, modal_open=True))

    if isinstance(command, CloseModal):
        if state.uploading and not command.force:
            raise InvalidTransitionError("cannot close the upload dialog while uploading")
        return Transition(replace(state, modal_open=False))

    if isinstance(command, AddFiles):
        return Transition(
            state,
            notice=Notification.success(FILES_ADDED_MESSAGE),
            stage_files=tuple(command.files),
        )

    if isinstance(command, Submit):
        if state.uploading:
            raise InvalidTransitionError("an upload is already in progress")
        if not state.modal_open:
            raise InvalidTransitionError("open the upload dialog before submitting")
        if command.staged_count <= 0:
            return Transition(state, notice=Notification.error(EMPTY_SUBMIT_MESSAGE))
        return Transition(replace(state, uploading=True), start_upload=True)

    if isinstance(command, UploadFinished):
        verdict = command.verdict
        if verdict.should_clear_accumulator:
            return Transition(
                replace(
                    state,
                    uploading=False,
                    modal_open=False,
                    uploaded_urls=state.uploaded_urls + tuple(command.batch.succeeded_urls),
                ),
                notice=verdict.notification,
                clear_staged=True,
            )
        return Transition(replace(state, uploading=False), notice=verdict.notification)

    if isinstance(command, UploadAborted):
        return Transition(
            replace(state, uploading=False),
            notice=Notification.error(UPLOAD_ERROR_MESSAGE),
        )

    if isinstance(command, Notify):
        return Transition(replace(state, notification=command.notification))

    if isinstance(command, ExpireNotification):
        current = state.notification
        if current is not None and current.id == command.notification_id:
            return Transition(replace(state, notification=None))
        return Transition(state)

    raise InvalidTransitionError(f"unknown command: {command!r}")


class UploadSession:
    """
    Runtime driver for one user's upload session.

    Usage:
        session = UploadSession(storage.upload, concurrency_limit=3)
        session.on_notification(lambda n: print(n.message))

        session.open_modal()
        session.add_files([StagedFile.from_path("a.csv")])
        batch = await session.submit()
    """

    def __init__(
        self,
        upload: UploadOperation,
        concurrency_limit: int,
        notification_ttl: float = 3.0,
        accumulator: Optional[FileAccumulator] = None,
        dispatcher: Optional[UploadDispatcher] = None,
        aggregator: Optional[BatchResultAggregator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if isinstance(concurrency_limit, bool) or not isinstance(concurrency_limit, int) or concurrency_limit < 1:
            raise DispatcherPreconditionError(
                f"concurrency_limit must be a positive integer, got {concurrency_limit!r}"
            )
        self._upload = upload
        self._concurrency_limit = concurrency_limit
        self._notification_ttl = notification_ttl
        self._accumulator = accumulator if accumulator is not None else FileAccumulator()
        self._dispatcher = dispatcher or UploadDispatcher()
        self._aggregator = aggregator or BatchResultAggregator()
        self._clock = clock
        self._events = EventEmitter()
        self._state = SessionState()
        self._notification_ids = itertools.count(1)
        self._timers: Set[asyncio.TimerHandle] = set()
        self._cancellation: Optional[CancellationToken] = None
        self._last_batch: Optional[BatchResult] = None

    # Event subscription methods
    def on_state_change(self, callback: Callable[[SessionState], None]):
        """Called after every transition. Receives the new SessionState."""
        self._events.on("state_change", callback)

    def on_notification(self, callback: Callable[[Notification], None]):
        """Called when a notification is published. Receives Notification."""
        self._events.on("notification", callback)

    def on_file_progress(self, callback: Callable[[StagedFile, FileProgress], None]):
        """Called with per-file upload progress."""
        self._dispatcher.on_file_progress(callback)

    def on_finish(self, callback: Callable[[BatchResult], None]):
        """Called when a dispatch run settles. Receives BatchResult."""
        self._events.on("finish", callback)

    def on_error(self, callback: Callable[[Exception], None]):
        """Called when a dispatch run fails unexpectedly. Receives Exception."""
        self._events.on("error", callback)

    # State properties
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def is_uploading(self) -> bool:
        return self._state.uploading

    @property
    def accumulator(self) -> FileAccumulator:
        return self._accumulator

    @property
    def dispatcher(self) -> UploadDispatcher:
        return self._dispatcher

    @property
    def staged_files(self) -> Tuple[StagedFile, ...]:
        return self._accumulator.snapshot()

    @property
    def uploaded_urls(self) -> Tuple[str, ...]:
        return self._state.uploaded_urls

    @property
    def last_batch(self) -> Optional[BatchResult]:
        return self._last_batch

    @property
    def current_notification(self) -> Optional[Notification]:
        """Current notification, or None once it has expired."""
        note = self._state.notification
        if note is None:
            return None
        if note.expires_at is not None and self._clock() >= note.expires_at:
            return None
        return note

    # Control methods
    def dispatch(self, command: Command) -> Transition:
        """Apply a command and its side effects."""
        result = transition(self._state, command)
        self._state = result.state
        if result.stage_files:
            self._accumulator.add(result.stage_files)
        if result.notice is not None:
            self._publish(result.notice)
        self._events.emit_nowait("state_change", self._state)
        return result

    def open_modal(self) -> None:
        self.dispatch(OpenModal())

    def close_modal(self, force: bool = False) -> None:
        self.dispatch(CloseModal(force=force))

    def add_files(self, files: Sequence[StagedFile]) -> None:
        self.dispatch(AddFiles(tuple(files)))

    def cancel(self) -> None:
        """Stop starting new uploads; uploads already running finish."""
        if self._cancellation is not None:
            logger.info("Cancelling pending uploads")
            self._cancellation.cancel()

    async def submit(self) -> Optional[BatchResult]:
        """
        Upload everything staged.

        Returns the BatchResult, or None when nothing was dispatched (empty
        submit) or the run failed unexpectedly.
        """
        started = self.dispatch(Submit(staged_count=len(self._accumulator)))
        if not started.start_upload:
            return None

        files = self._accumulator.snapshot()
        self._cancellation = CancellationToken()
        try:
            batch = await self._dispatcher.run(
                files,
                self._concurrency_limit,
                self._upload,
                cancellation=self._cancellation,
            )
            verdict = self._aggregator.reduce(batch)
            self._last_batch = batch
            settled = self.dispatch(UploadFinished(batch, verdict))
        except asyncio.CancelledError:
            self.dispatch(UploadAborted("cancelled"))
            raise
        except Exception as e:
            logger.error(f"Upload session failed: {e}", exc_info=True)
            self.dispatch(UploadAborted(str(e)))
            await self._events.emit("error", e)
            return None
        finally:
            self._cancellation = None

        if settled.clear_staged:
            self._clear_uploaded(files)
        await self._events.emit("finish", batch)
        return batch

    def close(self) -> None:
        """Cancel pending notification timers."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    # Internal methods
    def _clear_uploaded(self, files: Tuple[StagedFile, ...]) -> None:
        """Drop the uploaded batch, keeping files staged while it ran."""
        if self._accumulator.snapshot() == files:
            self._accumulator.clear()
            return
        for file in files:
            self._accumulator.remove(file)

    def _publish(self, notice: Notification) -> None:
        note = replace(
            notice,
            id=next(self._notification_ids),
            expires_at=self._clock() + self._notification_ttl,
        )
        self._state = transition(self._state, Notify(note)).state
        logger.debug(f"Notification #{note.id} ({note.kind.value}): {note.message}")
        self._schedule_expiry(note.id)
        self._events.emit_nowait("notification", note)

    def _schedule_expiry(self, notification_id: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: current_notification still honours expires_at
            return

        def expire():
            self._timers.discard(handle)
            self.dispatch(ExpireNotification(notification_id))

        handle = loop.call_later(self._notification_ttl, expire)
        self._timers.add(handle)

"""Staged file bookkeeping."""
from typing import Callable, List, Sequence, Tuple

from ..models import StagedFile
from ..utils.events import EventEmitter


class FileAccumulator:
    """
    Ordered list of files staged for the next batch.

    Files are appended as given; validation belongs to the storage route.
    """

    def __init__(self):
        self._files: List[StagedFile] = []
        self._events = EventEmitter()

    def on_files_added(self, callback: Callable[[Tuple[StagedFile, ...]], None]):
        """Called after ``add``. Receives the tuple of newly staged files."""
        self._events.on("files_added", callback)

    def add(self, files: Sequence[StagedFile]) -> None:
        new_files = tuple(files)
        self._files.extend(new_files)
        self._events.emit_nowait("files_added", new_files)

    def remove(self, file: StagedFile) -> bool:
        """Remove the first staged entry equal to ``file``."""
        try:
            self._files.remove(file)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        self._files.clear()

    def snapshot(self) -> Tuple[StagedFile, ...]:
        return tuple(self._files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __bool__(self) -> bool:
        return bool(self._files)

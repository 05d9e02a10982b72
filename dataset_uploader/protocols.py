"""
Protocols (Interfaces) for Dependency Inversion.

The orchestrator only talks to storage through these small interfaces.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

from .models import StagedFile, UploadOutcome


ProgressCallback = Callable[[float], None]
UploadOperation = Callable[[StagedFile, Optional[ProgressCallback]], Awaitable[UploadOutcome]]


@dataclass(frozen=True)
class UploadResponse:
    """What the storage endpoint returns for a finished upload."""
    url: str
    size: Optional[int] = None


@runtime_checkable
class IStorageClient(Protocol):
    """Interface for object storage uploads."""

    async def upload(
        self,
        file: StagedFile,
        on_progress_change: Optional[ProgressCallback] = None,
    ) -> UploadResponse:
        """
        Upload one file.

        Exactly one terminal outcome per call: a response with the public URL,
        or an exception. Progress percentages (0..100) are reported between
        the call and its outcome.
        """
        ...


@runtime_checkable
class IFilePolicy(Protocol):
    """Interface for the accepted-file-type policy of the storage route."""

    def is_accepted(self, file: StagedFile) -> bool:
        ...

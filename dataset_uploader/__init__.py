"""
Dataset Uploader - staged batch uploads to object storage.

Files are staged, uploaded as one batch with a bounded number of uploads in
flight, and reported back as a single verdict plus a transient notification.

Usage:
    from dataset_uploader import UploadOrchestrator, UploaderConfig, StagedFile

    config = UploaderConfig(storage_url="http://localhost:3000", concurrency_limit=3)
    async with UploadOrchestrator(config) as orchestrator:
        session = orchestrator.session
        session.open_modal()
        session.add_files([StagedFile.from_path("a.csv"), StagedFile.from_path("b.csv")])
        batch = await session.submit()
        print(batch.succeeded_urls, session.current_notification)
"""
from .errors import (
    DispatcherPreconditionError,
    EmptyBatchError,
    InvalidTransitionError,
    StorageError,
    StorageRejectedError,
    UploaderError,
)
from .models import (
    BatchResult,
    ErrorKind,
    Notification,
    NotificationKind,
    StagedFile,
    UploadOutcome,
    UploadStatus,
    UploaderConfig,
)
from .orchestrator import (
    BatchResultAggregator,
    CancellationToken,
    FileAccumulator,
    SessionPhase,
    SessionState,
    UploadDispatcher,
    UploadOrchestrator,
    UploadSession,
)
from .services import AcceptedFileTypes, HTTPStorageClient, StorageService

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    "UploadSession",
    "FileAccumulator",
    "UploadDispatcher",
    "CancellationToken",
    "BatchResultAggregator",
    "SessionState",
    "SessionPhase",
    # Models
    "StagedFile",
    "UploadOutcome",
    "UploadStatus",
    "ErrorKind",
    "BatchResult",
    "Notification",
    "NotificationKind",
    "UploaderConfig",
    # Services
    "HTTPStorageClient",
    "StorageService",
    "AcceptedFileTypes",
    # Errors
    "UploaderError",
    "EmptyBatchError",
    "DispatcherPreconditionError",
    "InvalidTransitionError",
    "StorageError",
    "StorageRejectedError",
]

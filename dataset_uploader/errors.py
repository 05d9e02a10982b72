"""Error types raised by the upload orchestrator and storage boundary."""
from typing import Optional


class UploaderError(Exception):
    """Base class for dataset_uploader errors."""


class EmptyBatchError(UploaderError):
    """Raised when a dispatch run is requested with no staged files."""


class DispatcherPreconditionError(UploaderError, ValueError):
    """Raised when the dispatcher is called with an invalid configuration."""


class InvalidTransitionError(UploaderError, RuntimeError):
    """Raised when a session command is not valid in the current state."""


class StorageError(UploaderError):
    """Raised by storage clients when an upload cannot be completed."""


class StorageRejectedError(StorageError):
    """Storage answered with a client-side (4xx) rejection."""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        message = f"storage rejected upload ({status_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StorageServerError(StorageError):
    """Storage kept answering with a server-side (5xx) error."""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"storage server error ({status_code}): {detail or 'no detail'}")


class CLIError(UploaderError, RuntimeError):
    """Raised when CLI validation/execution fails."""

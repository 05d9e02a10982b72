"""
Storage Service - Single Responsibility: turn one storage upload into an outcome.

Wraps the storage client, applies the accepted-file-type policy and
classifies failures so a single bad file never aborts a batch.
"""
from typing import Optional
import asyncio
import logging

import httpx

from ..errors import StorageRejectedError, StorageServerError
from ..models import ErrorKind, StagedFile, UploadOutcome
from ..protocols import IFilePolicy, IStorageClient, ProgressCallback

logger = logging.getLogger(__name__)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a storage client to an ErrorKind."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorKind.NETWORK_TIMEOUT
    if isinstance(exc, httpx.RequestError):
        return ErrorKind.NETWORK_ERROR
    if isinstance(exc, StorageRejectedError):
        return ErrorKind.REJECTED
    if isinstance(exc, StorageServerError):
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


class StorageService:
    """
    Service for uploading staged files to object storage.

    ``upload`` has the shape the dispatcher expects:
    ``(file, on_progress) -> UploadOutcome``.
    """

    def __init__(self, client: IStorageClient, policy: Optional[IFilePolicy] = None):
        """
        Initialize storage service.

        Args:
            client: Storage client
            policy: Accepted-file-type policy; None accepts everything
        """
        self._client = client
        self._policy = policy

    @property
    def client(self) -> IStorageClient:
        return self._client

    async def upload(
        self,
        file: StagedFile,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadOutcome:
        if self._policy is not None and not self._policy.is_accepted(file):
            logger.warning(f"Rejected {file.name}: file type not accepted")
            return UploadOutcome.fail(file, ErrorKind.REJECTED, f"file type not accepted: {file.name}")

        try:
            response = await self._client.upload(file, on_progress_change=on_progress)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = classify_error(e)
            error_msg = str(e) or type(e).__name__
            logger.error(f"Upload of {file.name} failed ({kind.value}): {error_msg}")
            return UploadOutcome.fail(file, kind, error_msg)

        return UploadOutcome.ok(file, response.url)

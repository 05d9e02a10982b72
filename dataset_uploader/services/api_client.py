"""HTTP adapter for object storage uploads."""
from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx

from ..errors import StorageError, StorageRejectedError, StorageServerError
from ..models import StagedFile
from ..protocols import ProgressCallback, UploadResponse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _read_content(file: StagedFile) -> bytes:
    """Load the bytes behind a staged file's handle."""
    handle = file.raw_handle
    if isinstance(handle, (bytes, bytearray)):
        return bytes(handle)
    if isinstance(handle, (str, Path)):
        return Path(handle).read_bytes()
    if isinstance(handle, io.IOBase) or hasattr(handle, "read"):
        if hasattr(handle, "seek"):
            handle.seek(0)
        return handle.read()
    raise StorageError(f"cannot read content of {file.name}: unsupported handle {type(handle).__name__}")


class HTTPStorageClient:
    """
    HTTP client adapter for the storage route.

    Implements IStorageClient protocol.
    """

    def __init__(
        self,
        base_url: str,
        bucket: str = "publicFiles",
        timeout: float = 60,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._bucket = bucket
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def upload_endpoint(self) -> str:
        return f"/api/storage/{self._bucket}/upload"

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPStorageClient not initialized. Use 'async with' context.")
        return self._client

    async def check_ready(self) -> None:
        """Probe the storage route; raises StorageError when it is not usable."""
        client = self._require_client()
        try:
            response = await client.get("/api/storage/init")
        except (httpx.RequestError, httpx.TimeoutException) as exc:
            raise StorageError(f"storage not reachable: {exc}") from exc
        if response.status_code >= 400:
            raise StorageError(
                f"storage init failed with {response.status_code}: {response.text}"
            )

    async def _stream(
        self,
        content: bytes,
        on_progress_change: Optional[ProgressCallback],
    ) -> AsyncIterator[bytes]:
        total = len(content)
        sent = 0
        for offset in range(0, total, CHUNK_SIZE):
            chunk = content[offset:offset + CHUNK_SIZE]
            sent += len(chunk)
            yield chunk
            if on_progress_change:
                on_progress_change(round(sent * 100 / total, 2))
            # Yield control so other uploads can progress between chunks
            await asyncio.sleep(0)

    async def upload(
        self,
        file: StagedFile,
        on_progress_change: Optional[ProgressCallback] = None,
    ) -> UploadResponse:
        client = self._require_client()
        content = _read_content(file)
        content_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"
        headers = {
            "X-File-Name": file.name,
            "Content-Type": content_type,
            "Content-Length": str(len(content)),
        }

        last_exception: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                response = await client.post(
                    self.upload_endpoint,
                    content=self._stream(content, on_progress_change),
                    headers=headers,
                )

                if response.status_code >= 500:
                    last_exception = StorageServerError(response.status_code, response.text)
                    if attempt < self._max_retries - 1:
                        logger.warning(
                            f"Storage returned {response.status_code} for {file.name}, "
                            f"retrying ({attempt + 1}/{self._max_retries})"
                        )
                        await asyncio.sleep(0.5 * (attempt + 1))
                        continue
                    raise last_exception

                if response.status_code >= 400:
                    try:
                        error_detail = response.json().get("message") or response.text
                    except Exception:
                        error_detail = response.text
                    raise StorageRejectedError(response.status_code, error_detail)

                payload = response.json()
                url = payload.get("url") if isinstance(payload, dict) else None
                if not url:
                    raise StorageError(f"storage response for {file.name} has no url")
                logger.debug(f"Stored {file.name} at {url}")
                return UploadResponse(url=url, size=payload.get("size"))
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                last_exception = exc
                if attempt < self._max_retries - 1:
                    logger.warning(f"Transport error uploading {file.name}: {exc}, retrying")
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise

        if last_exception:
            raise last_exception
        raise StorageError(f"Failed to upload {file.name} after {self._max_retries} attempts")

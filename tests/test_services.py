"""Tests for storage services."""
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from dataset_uploader.errors import StorageError, StorageRejectedError, StorageServerError
from dataset_uploader.models import ErrorKind, StagedFile
from dataset_uploader.protocols import IStorageClient, UploadResponse
from dataset_uploader.services.api_client import CHUNK_SIZE, HTTPStorageClient
from dataset_uploader.services.file_policy import AcceptedFileTypes
from dataset_uploader.services.storage import StorageService, classify_error


def _file(name="a.csv", data=b"a,b\n1,2\n"):
    return StagedFile.from_bytes(name, data)


class TestAcceptedFileTypes:
    def test_default_accepts_csv_only(self):
        policy = AcceptedFileTypes()
        assert policy.is_accepted(_file("data.csv")) is True
        assert policy.is_accepted(_file("DATA.CSV")) is True
        assert policy.is_accepted(_file("data.xlsx")) is False

    def test_extensions_normalized(self):
        policy = AcceptedFileTypes(["CSV", ".Parquet"])
        assert policy.extensions == (".csv", ".parquet")
        assert policy.is_accepted(_file("x.parquet")) is True

    def test_empty_allowlist_accepts_everything(self):
        policy = AcceptedFileTypes([])
        assert policy.is_accepted(_file("anything.bin")) is True
        assert policy.describe() == "any"


class TestClassifyError:
    def test_mapping(self):
        request = httpx.Request("POST", "http://storage/upload")
        assert classify_error(httpx.ReadTimeout("slow", request=request)) == ErrorKind.NETWORK_TIMEOUT
        assert classify_error(httpx.ConnectError("down", request=request)) == ErrorKind.NETWORK_ERROR
        assert classify_error(StorageRejectedError(413, "too big")) == ErrorKind.REJECTED
        assert classify_error(StorageServerError(502)) == ErrorKind.SERVER_ERROR
        assert classify_error(ValueError("odd")) == ErrorKind.UNKNOWN


class TestStorageService:
    @pytest.fixture
    def mock_client(self):
        client = Mock()
        client.upload = AsyncMock(return_value=UploadResponse(url="https://files.example/a.csv"))
        return client

    @pytest.mark.asyncio
    async def test_upload_success(self, mock_client):
        service = StorageService(mock_client)
        progress = Mock()

        outcome = await service.upload(_file(), progress)

        assert outcome.success is True
        assert outcome.url == "https://files.example/a.csv"
        mock_client.upload.assert_awaited_once()
        assert mock_client.upload.await_args.kwargs["on_progress_change"] is progress

    @pytest.mark.asyncio
    async def test_upload_failure_is_captured(self, mock_client):
        request = httpx.Request("POST", "http://storage/upload")
        mock_client.upload.side_effect = httpx.ConnectTimeout("timed out", request=request)
        service = StorageService(mock_client)

        outcome = await service.upload(_file())

        assert outcome.success is False
        assert outcome.reason == ErrorKind.NETWORK_TIMEOUT
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_policy_rejects_before_upload(self, mock_client):
        service = StorageService(mock_client, policy=AcceptedFileTypes([".csv"]))

        outcome = await service.upload(_file("report.pdf"))

        assert outcome.reason == ErrorKind.REJECTED
        mock_client.upload.assert_not_awaited()


def _storage_transport(handler):
    return httpx.MockTransport(handler)


class TestHTTPStorageClient:
    def test_implements_protocol(self):
        assert isinstance(HTTPStorageClient("http://storage"), IStorageClient)

    @pytest.mark.asyncio
    async def test_upload_streams_body_and_reports_progress(self):
        data = b"x" * (CHUNK_SIZE * 2 + 10)
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["path"] = request.url.path
            received["name"] = request.headers["X-File-Name"]
            received["type"] = request.headers["Content-Type"]
            received["body"] = request.content
            return httpx.Response(200, json={"url": "https://files.example/big.csv", "size": len(data)})

        progress = []
        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            response = await client.upload(_file("big.csv", data), progress.append)

        assert response.url == "https://files.example/big.csv"
        assert response.size == len(data)
        assert received["path"] == "/api/storage/publicFiles/upload"
        assert received["name"] == "big.csv"
        assert received["type"] == "text/csv"
        assert received["body"] == data
        assert len(progress) == 3
        assert progress == sorted(progress)
        assert progress[-1] == 100.0

    @pytest.mark.asyncio
    async def test_upload_reads_path_handle(self, tmp_path):
        path = tmp_path / "a.csv"
        path.write_bytes(b"1,2\n")
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200, json={"url": "u1"})

        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            await client.upload(StagedFile.from_path(path))

        assert bodies == [b"1,2\n"]

    @pytest.mark.asyncio
    async def test_client_error_raises_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"message": "File type not accepted"})

        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            with pytest.raises(StorageRejectedError) as exc_info:
                await client.upload(_file())

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "File type not accepted"

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, monkeypatch):
        monkeypatch.setattr("dataset_uploader.services.api_client.asyncio.sleep", AsyncMock())
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"url": "u1"})

        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            response = await client.upload(_file())

        assert response.url == "u1"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, monkeypatch):
        monkeypatch.setattr("dataset_uploader.services.api_client.asyncio.sleep", AsyncMock())

        def handler(request):
            return httpx.Response(500, text="down")

        async with HTTPStorageClient(
            "http://storage", max_retries=2, transport=_storage_transport(handler)
        ) as client:
            with pytest.raises(StorageServerError):
                await client.upload(_file())

    @pytest.mark.asyncio
    async def test_missing_url_raises(self):
        def handler(request):
            return httpx.Response(200, content=json.dumps({"ok": True}))

        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            with pytest.raises(StorageError):
                await client.upload(_file())

    @pytest.mark.asyncio
    async def test_check_ready(self):
        def handler(request):
            if request.url.path == "/api/storage/init":
                return httpx.Response(500, text="missing credentials")
            return httpx.Response(404)

        async with HTTPStorageClient("http://storage", transport=_storage_transport(handler)) as client:
            with pytest.raises(StorageError, match="storage init failed"):
                await client.check_ready()

    @pytest.mark.asyncio
    async def test_requires_context(self):
        client = HTTPStorageClient("http://storage")
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.upload(_file())

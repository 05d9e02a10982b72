"""Tests for the bounded-concurrency upload dispatcher."""
import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from dataset_uploader.errors import DispatcherPreconditionError, EmptyBatchError
from dataset_uploader.models import ErrorKind, StagedFile, UploadOutcome, UploadStatus
from dataset_uploader.orchestrator.dispatcher import CancellationToken, UploadDispatcher


def _files(count):
    return [StagedFile(name=f"f{i}.csv", size_bytes=100, raw_handle=b"x") for i in range(count)]


def _delayed_upload(delays=None, failing=(), tracker=None):
    """Fake upload operation: sleeps, reports progress, then succeeds or fails."""
    delays = delays or {}
    failing = set(failing)

    async def upload(file, on_progress=None):
        if tracker is not None:
            tracker["in_flight"] += 1
            tracker["max"] = max(tracker["max"], tracker["in_flight"])
        try:
            if on_progress:
                on_progress(50)
            await asyncio.sleep(delays.get(file.name, 0.01))
            if on_progress:
                on_progress(100)
            if file.name in failing:
                return UploadOutcome.fail(file, ErrorKind.NETWORK_ERROR, "boom")
            return UploadOutcome.ok(file, f"https://files.example/{file.name}")
        finally:
            if tracker is not None:
                tracker["in_flight"] -= 1

    return upload


@pytest.mark.asyncio
async def test_outcomes_follow_input_order_not_completion_order():
    files = _files(4)
    # Later files finish first
    delays = {"f0.csv": 0.08, "f1.csv": 0.06, "f2.csv": 0.04, "f3.csv": 0.01}
    completed = []
    dispatcher = UploadDispatcher()
    dispatcher.on_file_complete(lambda outcome: completed.append(outcome.filename))

    batch = await dispatcher.run(files, 4, _delayed_upload(delays))

    assert [o.filename for o in batch.outcomes] == ["f0.csv", "f1.csv", "f2.csv", "f3.csv"]
    assert completed == ["f3.csv", "f2.csv", "f1.csv", "f0.csv"]
    assert batch.succeeded_urls == tuple(f"https://files.example/f{i}.csv" for i in range(4))


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 2, 7])
async def test_one_outcome_per_file(count):
    batch = await UploadDispatcher().run(_files(count), 3, _delayed_upload())
    assert len(batch.outcomes) == count


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 2, 3])
async def test_in_flight_uploads_bounded_by_limit(limit):
    tracker = {"in_flight": 0, "max": 0}
    await UploadDispatcher().run(_files(6), limit, _delayed_upload(tracker=tracker))
    assert tracker["max"] == limit


@pytest.mark.asyncio
async def test_more_concurrency_is_not_slower():
    files = _files(4)
    duration = 0.05
    delays = {f.name: duration for f in files}

    start = time.monotonic()
    await UploadDispatcher().run(files, 1, _delayed_upload(delays))
    serial = time.monotonic() - start

    start = time.monotonic()
    await UploadDispatcher().run(files, 4, _delayed_upload(delays))
    parallel = time.monotonic() - start

    assert serial >= len(files) * duration * 0.9
    assert parallel < serial
    assert parallel < len(files) * duration * 0.75


@pytest.mark.asyncio
async def test_failures_are_captured_and_do_not_block_others():
    files = _files(5)
    batch = await UploadDispatcher().run(files, 3, _delayed_upload(failing={"f1.csv", "f3.csv"}))
    statuses = ["S" if o.success else "F" for o in batch.outcomes]
    assert statuses == ["S", "F", "S", "F", "S"]
    assert batch.outcomes[1].reason == ErrorKind.NETWORK_ERROR


@pytest.mark.asyncio
async def test_raising_upload_becomes_failure_outcome():
    files = _files(2)

    async def upload(file, on_progress=None):
        if file.name == "f0.csv":
            raise RuntimeError("socket closed")
        return UploadOutcome.ok(file, "u1")

    failed = []
    dispatcher = UploadDispatcher()
    dispatcher.on_file_fail(failed.append)

    batch = await dispatcher.run(files, 2, upload)

    assert batch.outcomes[0].status == UploadStatus.FAILED
    assert batch.outcomes[0].reason == ErrorKind.UNKNOWN
    assert batch.outcomes[0].error == "socket closed"
    assert batch.outcomes[1].success is True
    assert [o.filename for o in failed] == ["f0.csv"]


@pytest.mark.asyncio
async def test_empty_batch_never_invokes_upload():
    upload = AsyncMock()
    with pytest.raises(EmptyBatchError):
        await UploadDispatcher().run([], 3, upload)
    upload.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1, 1.5, True])
async def test_invalid_concurrency_limit(limit):
    upload = AsyncMock()
    with pytest.raises(DispatcherPreconditionError):
        await UploadDispatcher().run(_files(1), limit, upload)
    upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_progress_is_forwarded_per_file():
    files = _files(2)
    seen = []
    events = []
    dispatcher = UploadDispatcher()
    dispatcher.on_file_progress(lambda file, progress: events.append((file.name, progress.percent)))

    await dispatcher.run(files, 2, _delayed_upload(), on_progress=lambda f, p: seen.append((f.name, p)))

    assert sorted(seen) == [("f0.csv", 50.0), ("f0.csv", 100.0), ("f1.csv", 50.0), ("f1.csv", 100.0)]
    assert sorted(events) == sorted(seen)


@pytest.mark.asyncio
async def test_cancellation_stops_queued_uploads_only():
    files = _files(4)
    token = CancellationToken()
    started = []

    async def upload(file, on_progress=None):
        started.append(file.name)
        if file.name == "f0.csv":
            token.cancel()
        await asyncio.sleep(0.02)
        return UploadOutcome.ok(file, f"u-{file.name}")

    batch = await UploadDispatcher().run(files, 1, upload, cancellation=token)

    assert started == ["f0.csv"]
    assert batch.outcomes[0].success is True
    assert [o.reason for o in batch.outcomes[1:]] == [ErrorKind.CANCELLED] * 3
    assert len(batch.outcomes) == 4


@pytest.mark.asyncio
async def test_cancellation_lets_in_flight_uploads_finish():
    files = _files(3)
    token = CancellationToken()

    async def upload(file, on_progress=None):
        if file.name == "f1.csv":
            token.cancel()
        await asyncio.sleep(0.02)
        return UploadOutcome.ok(file, f"u-{file.name}")

    batch = await UploadDispatcher().run(files, 2, upload, cancellation=token)

    assert batch.outcomes[0].success is True
    assert batch.outcomes[1].success is True
    assert batch.outcomes[2].reason == ErrorKind.CANCELLED

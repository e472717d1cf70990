import asyncio
from datetime import datetime, UTC

import pytest

from cloudstore.context import Context
from cloudstore.error import (
    ContextCancelledException,
    DeadlineExceededException,
    ServerException,
    StreamClosedError,
)
from cloudstore.models import ACLRole, ACLRule, StoredObject
from cloudstore.writer import ContentTypedReader, ObjectWriter, Pipe


UPDATED = "2014-06-15T13:00:20.512Z"


class FakeService:
    """In-memory stand-in for the upload request."""

    def __init__(self, error=None, read_media=True, release=None):
        self.error = error
        self.read_media = read_media
        self.release = release
        self.calls = 0
        self.chunks = []
        self.bucket_name = None
        self.wire_object = None
        self.content_type = None

    async def insert_object(self, bucket_name, wire_object, media):
        self.calls += 1
        self.bucket_name = bucket_name
        self.wire_object = wire_object
        self.content_type = media.content_type
        if self.release is not None:
            await self.release.wait()
        if self.read_media:
            async for chunk in media:
                self.chunks.append(chunk)
        if self.error is not None:
            raise self.error
        body = b"".join(self.chunks)
        return dict(
            wire_object,
            size=str(len(body)),
            generation="1",
            metageneration="1",
            updated=UPDATED,
            owner={"entity": "user-uploader"},
        )


def _info(**overrides):
    fields = dict(bucket="b", name="o.txt", content_type="text/plain")
    fields.update(overrides)
    return StoredObject(**fields)


@pytest.mark.asyncio
async def test_upload_returns_stored_object():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())

    assert await writer.write(b"hello") == 5
    assert await writer.write(b" world") == 6
    await writer.close()
    obj = await writer.result()

    assert obj.name == "o.txt"
    assert obj.bucket == "b"
    assert obj.size == 11
    assert obj.generation == 1
    assert obj.updated == datetime(2014, 6, 15, 13, 0, 20, 512000, tzinfo=UTC)
    assert obj.owner.entity == "user-uploader"
    assert b"".join(service.chunks) == b"hello world"
    assert service.bucket_name == "b"
    assert service.content_type == "text/plain"
    assert service.calls == 1


@pytest.mark.asyncio
async def test_only_writable_fields_are_sent():
    service = FakeService()
    info = _info(
        acl=(ACLRule("allUsers", ACLRole.READER),),
        metadata={"k": "v"},
        size=999,
        generation=42,
    )
    writer = ObjectWriter(Context(service), info)
    await writer.close()
    await writer.result()

    assert service.wire_object == {
        "bucket": "b",
        "name": "o.txt",
        "contentType": "text/plain",
        "acl": [{"entity": "allUsers", "role": "READER"}],
        "metadata": {"k": "v"},
    }


@pytest.mark.asyncio
async def test_chunks_arrive_in_write_order():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())
    chunks = [f"part-{i};".encode() for i in range(50)]

    for chunk in chunks:
        await writer.write(chunk)
    await writer.close()
    await writer.result()

    assert service.chunks == chunks


@pytest.mark.asyncio
async def test_empty_write_does_not_reach_the_service():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())

    assert await writer.write(b"") == 0
    await writer.write(b"x")
    await writer.close()
    obj = await writer.result()

    assert service.chunks == [b"x"]
    assert obj.size == 1


@pytest.mark.asyncio
async def test_write_waits_until_the_upload_takes_the_bytes():
    release = asyncio.Event()
    service = FakeService(release=release)
    writer = ObjectWriter(Context(service), _info())

    pending = asyncio.create_task(writer.write(b"hello"))
    await asyncio.sleep(0.05)
    assert not pending.done()

    release.set()
    assert await pending == 5
    await writer.close()
    assert (await writer.result()).size == 5


@pytest.mark.asyncio
async def test_result_waits_for_close():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())
    await writer.write(b"hello")

    pending = asyncio.create_task(writer.result())
    await asyncio.sleep(0.05)
    assert not pending.done()
    assert not writer.done

    await writer.close()
    obj = await pending
    assert obj.size == 5
    assert writer.done


@pytest.mark.asyncio
async def test_result_is_the_same_object_every_time():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())
    await writer.write(b"hello")
    await writer.close()

    first = await writer.result()
    second = await writer.result()

    assert first is second
    assert service.calls == 1


@pytest.mark.asyncio
async def test_remote_error_is_only_reported_by_result():
    error = ServerException("backend unavailable", 503)
    service = FakeService(error=error)
    writer = ObjectWriter(Context(service), _info())

    await writer.write(b"hello")
    await writer.close()

    with pytest.raises(ServerException) as first:
        await writer.result()
    with pytest.raises(ServerException) as second:
        await writer.result()

    assert first.value is error
    assert second.value is error
    assert service.calls == 1


@pytest.mark.asyncio
async def test_local_error_is_sticky_and_skips_the_pipe():
    error = ServerException("bad request", 400)
    service = FakeService(error=error, read_media=False)
    writer = ObjectWriter(Context(service), _info())

    with pytest.raises(StreamClosedError) as first:
        await writer.write(b"hello")

    pipe_writes = 0
    original_write = writer._pipe.write

    async def counting_write(data):
        nonlocal pipe_writes
        pipe_writes += 1
        return await original_write(data)

    writer._pipe.write = counting_write

    with pytest.raises(StreamClosedError) as second:
        await writer.write(b"world")
    with pytest.raises(StreamClosedError) as on_close:
        await writer.close()

    assert second.value is first.value
    assert on_close.value is first.value
    assert pipe_writes == 0

    with pytest.raises(ServerException) as remote:
        await writer.result()
    assert remote.value is error


@pytest.mark.asyncio
async def test_deadline_fails_the_upload():
    service = FakeService(release=asyncio.Event())
    writer = ObjectWriter(Context(service, timeout=0.05), _info())

    with pytest.raises(DeadlineExceededException):
        await writer.result()
    with pytest.raises(StreamClosedError):
        await writer.write(b"late")


@pytest.mark.asyncio
async def test_cancelling_the_context_fails_the_upload():
    service = FakeService(release=asyncio.Event())
    ctx = Context(service)
    writer = ObjectWriter(ctx, _info())

    pending = asyncio.create_task(writer.result())
    await asyncio.sleep(0.01)
    ctx.cancel()

    with pytest.raises(ContextCancelledException):
        await pending


@pytest.mark.asyncio
async def test_cancelled_context_never_calls_the_service():
    service = FakeService()
    ctx = Context(service)
    ctx.cancel()
    writer = ObjectWriter(ctx, _info())

    with pytest.raises(ContextCancelledException):
        await writer.result()
    assert service.calls == 0
    assert ctx.cancelled


@pytest.mark.asyncio
async def test_context_manager_closes_the_writer():
    service = FakeService()
    async with ObjectWriter(Context(service), _info()) as writer:
        await writer.write(b"hello")
        await writer.write(b" world")

    obj = await writer.result()
    assert obj.size == 11


@pytest.mark.asyncio
async def test_context_manager_error_fails_the_upload():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())

    with pytest.raises(RuntimeError, match="source broke"):
        async with writer:
            await writer.write(b"partial")
            raise RuntimeError("source broke")

    with pytest.raises(RuntimeError, match="source broke"):
        await writer.result()
    assert service.chunks == [b"partial"]


@pytest.mark.asyncio
async def test_pipe_reports_end_of_content_after_writer_closes():
    pipe = Pipe()

    reader = asyncio.create_task(pipe.read())
    assert await pipe.write(b"abc") == 3
    assert await reader == b"abc"

    await pipe.close_writer()
    await pipe.close_reader()
    assert await pipe.read() == b""
    with pytest.raises(StreamClosedError):
        await pipe.write(b"more")


@pytest.mark.asyncio
async def test_pipe_write_fails_when_reader_goes_away():
    pipe = Pipe()

    pending = asyncio.create_task(pipe.write(b"abc"))
    await asyncio.sleep(0)
    await pipe.close_reader("upload finished")

    with pytest.raises(StreamClosedError, match="upload finished"):
        await pending


@pytest.mark.asyncio
async def test_metadata_is_fixed_when_the_writer_is_created():
    service = FakeService()
    metadata = {"k": "v"}
    info = _info(metadata=metadata)
    writer = ObjectWriter(Context(service), info)

    metadata["k"] = "mutated"
    await writer.write(b"hello")
    await writer.close()
    await writer.result()

    assert writer.info is info
    assert service.wire_object["metadata"] == {"k": "v"}


@pytest.mark.asyncio
async def test_close_can_be_called_twice():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())
    await writer.write(b"hello")

    await writer.close()
    await writer.close()

    assert (await writer.result()).size == 5
    assert service.calls == 1


@pytest.mark.asyncio
async def test_write_after_close_fails_and_stays_failed():
    service = FakeService()
    writer = ObjectWriter(Context(service), _info())
    await writer.close()

    with pytest.raises(StreamClosedError) as first:
        await writer.write(b"late")
    with pytest.raises(StreamClosedError) as again:
        await writer.close()

    assert again.value is first.value
    assert (await writer.result()).size == 0


@pytest.mark.asyncio
async def test_empty_pipe_write_is_not_end_of_content():
    pipe = Pipe()
    reader = ContentTypedReader(pipe, "text/plain")

    assert await pipe.write(b"") == 0
    pending = asyncio.create_task(reader.read())
    assert await pipe.write(b"abc") == 3
    assert await pending == b"abc"

    await pipe.close_writer()
    assert await reader.read() == b""

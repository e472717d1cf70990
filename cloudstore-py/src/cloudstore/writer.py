"""
Streaming object upload

ObjectWriter lets a caller push content piece by piece while a single
upload request, started in the background, pulls the same bytes from an
in-process pipe. Nothing is buffered beyond the chunk currently changing
hands.
"""

import asyncio
import logging
from typing import Optional

from .context import Context
from .convert import to_domain_object, to_wire_object
from .error import ContextCancelledException, StreamClosedError
from .models import StoredObject


class Pipe:
    """
    Zero-capacity pipe between one producer and one consumer.

    write() does not return until read() has taken the chunk. Once the
    consumer end is closed, pending and later writes fail with
    StreamClosedError. Closing the producer end makes read() return b"".
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._write_lock = asyncio.Lock()
        self._chunk: Optional[bytes] = None
        self._writer_closed = False
        self._writer_error: Optional[BaseException] = None
        self._reader_closed_reason: Optional[str] = None

    async def write(self, data: bytes) -> int:
        if not data:
            # An empty chunk would read as end of content.
            return 0
        async with self._write_lock:
            async with self._cond:
                if self._writer_closed:
                    raise StreamClosedError()
                if self._reader_closed_reason is not None:
                    raise StreamClosedError(self._reader_closed_reason)

                self._chunk = bytes(data)
                self._cond.notify_all()
                try:
                    await self._cond.wait_for(
                        lambda: self._chunk is None or self._reader_closed_reason is not None
                    )
                except asyncio.CancelledError:
                    self._chunk = None
                    raise

                if self._chunk is not None:
                    # The consumer went away without taking the chunk.
                    self._chunk = None
                    raise StreamClosedError(self._reader_closed_reason)
                return len(data)

    async def read(self) -> bytes:
        async with self._cond:
            await self._cond.wait_for(
                lambda: (
                    self._chunk is not None
                    or self._writer_closed
                    or self._reader_closed_reason is not None
                )
            )
            if self._chunk is not None:
                chunk, self._chunk = self._chunk, None
                self._cond.notify_all()
                return chunk
            if self._writer_closed:
                if self._writer_error is not None:
                    raise self._writer_error
                return b""
            raise StreamClosedError("read on closed pipe")

    async def close_writer(self, error: Optional[BaseException] = None) -> None:
        """Signal end of content, or make the consumer fail with error."""
        async with self._cond:
            if not self._writer_closed:
                self._writer_closed = True
                self._writer_error = error
            self._cond.notify_all()

    async def close_reader(self, reason: str = "read end closed") -> None:
        async with self._cond:
            if self._reader_closed_reason is None:
                self._reader_closed_reason = reason
            self._cond.notify_all()


class ContentTypedReader:
    """
    Consumer end of a Pipe, iterated as byte chunks.

    Carries the MIME type of the content so the transport can label the
    media it uploads.
    """

    def __init__(self, pipe: Pipe, content_type: str):
        self._pipe = pipe
        self.content_type = content_type

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self._pipe.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def read(self) -> bytes:
        """Return the next chunk, or b"" at end of content."""
        return await self._pipe.read()

    async def aclose(self) -> None:
        await self._pipe.close_reader()


class ObjectWriter:
    """
    Uploads one object from incrementally written content.

    The upload request starts as soon as the writer is created, so it must
    be constructed inside a running event loop. Every write waits until
    the upload has taken the bytes. close() ends the content; result()
    then waits for the service's answer.

    Example:
        async with ObjectWriter(ctx, StoredObject(bucket="b", name="o.txt",
                                                  content_type="text/plain")) as w:
            await w.write(b"hello")
            await w.write(b" world")
        obj = await w.result()

    result() never completes before close() has been called, unless the
    context deadline or cancellation ends the upload first.

    Two kinds of failure are kept apart. write() and close() only raise
    StreamClosedError for problems with the local pipe; once one happens
    it is raised again by every later write() and close(). Errors from the
    upload request are only raised by result().
    """

    def __init__(self, ctx: Context, info: StoredObject):
        self._ctx = ctx
        self._info = info
        self._pipe = Pipe()
        self._reader = ContentTypedReader(self._pipe, info.content_type)
        # Metadata is fixed when the writer is created.
        self._wire_object = to_wire_object(info)
        self._done = asyncio.Event()
        self._obj: Optional[StoredObject] = None
        self._remote_error: Optional[BaseException] = None
        self._local_error: Optional[StreamClosedError] = None
        self._logger = logging.getLogger(__name__)
        self._task = asyncio.get_running_loop().create_task(self._upload())

    @property
    def info(self) -> StoredObject:
        """The metadata the writer was created with."""
        return self._info

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def _upload(self) -> None:
        info = self._info
        self._logger.debug(
            "[cloudstore][Writer] upload started bucket=%s object=%s contentType=%s",
            info.bucket,
            info.name,
            info.content_type,
        )
        try:
            response = await self._ctx.run(
                self._ctx.service.insert_object(info.bucket, self._wire_object, self._reader)
            )
        except asyncio.CancelledError:
            self._remote_error = ContextCancelledException("upload task cancelled")
            raise
        except Exception as ex:
            self._remote_error = ex
            self._logger.warning(
                "[cloudstore][Writer] upload failed bucket=%s object=%s error=%s",
                info.bucket,
                info.name,
                ex,
            )
        else:
            self._obj = to_domain_object(response)
            self._logger.info(
                "[cloudstore][Writer] upload finished bucket=%s object=%s generation=%s size=%s",
                info.bucket,
                info.name,
                self._obj.generation if self._obj else None,
                self._obj.size if self._obj else None,
            )
        finally:
            await self._pipe.close_reader("upload finished")
            self._done.set()

    async def write(self, data: bytes) -> int:
        """
        Write data to the object.

        Returns the number of bytes written. Blocks until the upload has
        taken the bytes from the pipe.
        """
        if self._local_error is not None:
            raise self._local_error
        if not data:
            return 0
        try:
            return await self._pipe.write(data)
        except StreamClosedError as ex:
            self._local_error = ex
            self._logger.warning(
                "[cloudstore][Writer] write failed bucket=%s object=%s error=%s",
                self._info.bucket,
                self._info.name,
                ex,
            )
            raise

    async def close(self) -> None:
        """End the content and release the reader. Safe to call again."""
        if self._local_error is not None:
            raise self._local_error
        await self._pipe.close_writer()
        await self._reader.aclose()

    async def result(self) -> StoredObject:
        """
        Wait for the upload to finish and return the stored object.

        Raises the upload's error, unchanged, if the request failed.
        Later calls give the same outcome without another request.
        """
        await self._done.wait()
        if self._remote_error is not None:
            raise self._remote_error
        return self._obj

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_val is not None:
            # Fail the upload instead of committing truncated content.
            await self._pipe.close_writer(exc_val)
            return
        await self.close()

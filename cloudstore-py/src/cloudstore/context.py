"""
Execution context for calls made on behalf of a writer
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Protocol, TypeVar

from .error import ContextCancelledException, DeadlineExceededException

T = TypeVar("T")


class ObjectInserter(Protocol):
    """Anything able to upload one object from a stream of byte chunks."""

    async def insert_object(
        self,
        bucket_name: str,
        wire_object: Dict[str, Any],
        media: Any,
    ) -> Dict[str, Any]:
        ...


class Context:
    """
    Carries the service used for a call together with its deadline and
    cancellation signal.

    Example:
        ctx = Context(client, timeout=60)
        writer = ObjectWriter(ctx, StoredObject(bucket="b", name="o.txt"))
        ...
        ctx.cancel()  # the pending upload fails with ContextCancelledException
    """

    def __init__(self, service: ObjectInserter, timeout: Optional[float] = None):
        self.service = service
        self.timeout = timeout
        self._cancelled = asyncio.Event()
        self._logger = logging.getLogger(__name__)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Abort any call running under this context. Idempotent."""
        self._cancelled.set()

    async def run(self, call: Awaitable[T]) -> T:
        """Await call, giving up on cancellation or once the deadline passes."""
        if self._cancelled.is_set():
            if asyncio.iscoroutine(call):
                call.close()
            raise ContextCancelledException()

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if self._cancelled.is_set():
            self._logger.info("[cloudstore][Context] call cancelled")
            raise ContextCancelledException()
        self._logger.info("[cloudstore][Context] deadline exceeded timeoutSeconds=%s", self.timeout)
        raise DeadlineExceededException(self.timeout)

"""Delivery of step messages to the worker, optionally after a delay."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Awaitable, Callable
import logging
from uuid import uuid4

import httpx

from vidsum.core.logging_safety import safe_log_url
from vidsum.schemas.job import QueueMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[QueueMessage], Awaitable[None]]

WORKER_SECRET_HEADER = "X-Worker-Secret"


def _new_dispatch_id() -> str:
    return f"dispatch-{uuid4()}"


class Dispatcher(ABC):
    """Schedules a step message for delivery and returns immediately."""

    _handler: MessageHandler | None = None

    def bind(self, handler: MessageHandler) -> None:
        self._handler = handler

    @abstractmethod
    async def enqueue(self, message: QueueMessage, delay_seconds: float = 0) -> str:
        """Schedule ``message`` and return its dispatch id."""

    async def join(self) -> None:
        """Wait until nothing is due now; delayed deliveries are not awaited."""

    async def aclose(self) -> None:
        return None


class LocalDispatcher(Dispatcher):
    """Runs the bound handler on the current event loop."""

    def __init__(self, handler: MessageHandler | None = None) -> None:
        if handler is not None:
            self.bind(handler)
        self._immediate: dict[str, asyncio.Handle] = {}
        self._delayed: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._immediate) + len(self._delayed) + len(self._tasks)

    async def enqueue(self, message: QueueMessage, delay_seconds: float = 0) -> str:
        if self._handler is None:
            raise RuntimeError("dispatcher has no handler bound")
        loop = asyncio.get_running_loop()
        dispatch_id = _new_dispatch_id()
        if delay_seconds > 0:
            self._delayed[dispatch_id] = loop.call_later(delay_seconds, self._start, message, dispatch_id)
        else:
            self._immediate[dispatch_id] = loop.call_soon(self._start, message, dispatch_id)
        logger.info(
            "dispatch.scheduled dispatch_id=%s job_id=%s step=%s delay_seconds=%s",
            dispatch_id,
            message.job_id,
            message.step.value,
            delay_seconds,
        )
        return dispatch_id

    def _start(self, message: QueueMessage, dispatch_id: str) -> None:
        self._immediate.pop(dispatch_id, None)
        self._delayed.pop(dispatch_id, None)
        task = asyncio.get_running_loop().create_task(self._run(message, dispatch_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, message: QueueMessage, dispatch_id: str) -> None:
        assert self._handler is not None
        try:
            await self._handler(message)
        except Exception:
            logger.exception("dispatch.handler_failed dispatch_id=%s job_id=%s", dispatch_id, message.job_id)

    async def join(self) -> None:
        while self._immediate or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0)

    async def aclose(self) -> None:
        for handle in [*self._immediate.values(), *self._delayed.values()]:
            handle.cancel()
        self._immediate.clear()
        self._delayed.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class HttpDispatcher(Dispatcher):
    """Posts step messages to a worker endpoint in the background.

    Delivery failures are logged and not retried; the job stays in its
    current status.
    """

    def __init__(
        self,
        *,
        worker_url: str,
        secret: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._worker_url = worker_url
        self._secret = secret
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)
        self._tasks: set[asyncio.Task[None]] = set()

    async def enqueue(self, message: QueueMessage, delay_seconds: float = 0) -> str:
        dispatch_id = _new_dispatch_id()
        task = asyncio.get_running_loop().create_task(self._deliver(message, delay_seconds, dispatch_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return dispatch_id

    async def _deliver(self, message: QueueMessage, delay_seconds: float, dispatch_id: str) -> None:
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        headers = {WORKER_SECRET_HEADER: self._secret} if self._secret else {}
        payload = message.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            response = await self._client.post(self._worker_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "dispatch.delivery_failed dispatch_id=%s job_id=%s worker=%s reason=%s",
                dispatch_id,
                message.job_id,
                safe_log_url(self._worker_url),
                type(exc).__name__,
            )
            return
        logger.info("dispatch.delivered dispatch_id=%s job_id=%s step=%s", dispatch_id, message.job_id, message.step.value)

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._client.aclose()


__all__ = ["Dispatcher", "HttpDispatcher", "LocalDispatcher", "MessageHandler", "WORKER_SECRET_HEADER"]

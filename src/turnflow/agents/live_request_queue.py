"""Inbound request queue for live (duplex) invocations."""

import asyncio
from dataclasses import dataclass

from turnflow.types import Blob, Content


@dataclass(frozen=True, kw_only=True)
class LiveRequest:
    """One inbound live request; exactly one field is expected to be set."""

    content: Content | None = None
    blob: Blob | None = None
    activity_start: bool = False
    activity_end: bool = False
    close: bool = False


class LiveRequestQueue:
    """Queue of inbound live requests.

    The caller must ``close()`` the queue to signal end of input; closing
    ends the live stream without error.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[LiveRequest] = asyncio.Queue()

    def close(self) -> None:
        self._queue.put_nowait(LiveRequest(close=True))

    def send_content(self, content: Content) -> None:
        self._queue.put_nowait(LiveRequest(content=content))

    def send_realtime(self, blob: Blob) -> None:
        self._queue.put_nowait(LiveRequest(blob=blob))

    def send_activity_start(self) -> None:
        self._queue.put_nowait(LiveRequest(activity_start=True))

    def send_activity_end(self) -> None:
        self._queue.put_nowait(LiveRequest(activity_end=True))

    def send(self, request: LiveRequest) -> None:
        self._queue.put_nowait(request)

    async def get(self) -> LiveRequest:
        return await self._queue.get()


@dataclass(kw_only=True)
class ActiveStreamingTool:
    """A streaming tool running in the background of a live invocation.

    Attributes:
        task: Task running the tool, set once the model calls it
        stream: Dedicated input queue fed with a copy of every inbound request
    """

    task: asyncio.Task | None = None
    stream: LiveRequestQueue | None = None


__all__ = ["ActiveStreamingTool", "LiveRequest", "LiveRequestQueue"]

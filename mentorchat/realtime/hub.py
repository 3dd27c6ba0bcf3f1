"""In-process change-notification hub.

Channels bind listeners to row events on a table, optionally filtered on a
column value. The storage layer publishes committed changes here; each
subscribed channel delivers them to its listeners from its own task, in
publication order.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from mentorchat.services.provider import ServiceProvider

logger = logging.getLogger(__name__)

Change = dict[str, Any]  # {"table": str, "event": str, "new": dict}
Listener = Callable[[Change], Any]


@dataclass
class Binding:
    event: str
    table: str
    filter: dict[str, Any]
    listener: Listener

    def matches(self, change: Change) -> bool:
        if change.get("event") != self.event or change.get("table") != self.table:
            return False
        row = change.get("new") or {}
        return all(
            str(row.get(column)) == str(value) for column, value in self.filter.items()
        )


class RealtimeChannel:
    def __init__(self, name: str, hub: "RealtimeHub"):
        self.name = name
        self._hub = hub
        self._bindings: list[Binding] = []
        self._queue: asyncio.Queue[Change] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self.closed = False

    def on(
        self,
        event: str,
        table: str,
        listener: Listener,
        filter: dict[str, Any] | None = None,
    ) -> "RealtimeChannel":
        self._bindings.append(Binding(event, table, filter or {}, listener))
        return self

    def subscribe(self) -> "RealtimeChannel":
        """Starts delivery. Must be called from a running event loop."""
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(self._run())
            self._hub._register(self)
            logger.debug(f"Channel {self.name} subscribed")
        return self

    def deliver(self, change: Change) -> None:
        if self.closed:
            return
        if any(binding.matches(change) for binding in self._bindings):
            self._queue.put_nowait(change)

    async def join(self) -> None:
        """Waits until every queued change has been handed to listeners."""
        await self._queue.join()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        logger.debug(f"Channel {self.name} closed")

    async def _run(self) -> None:
        while True:
            change = await self._queue.get()
            try:
                for binding in self._bindings:
                    if not binding.matches(change):
                        continue
                    try:
                        result = binding.listener(change)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        logger.error(
                            f"Listener on channel {self.name} failed: {e}",
                            exc_info=True,
                        )
            finally:
                self._queue.task_done()


class RealtimeHub:
    def __init__(self):
        self._channels: list[RealtimeChannel] = []

    def channel(self, name: str) -> RealtimeChannel:
        return RealtimeChannel(name, self)

    def _register(self, channel: RealtimeChannel) -> None:
        self._channels.append(channel)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def publish(self, change: Change) -> None:
        """Fans a committed change out to every open channel. Never blocks."""
        for channel in list(self._channels):
            channel.deliver(change)

    async def remove_channel(self, channel: RealtimeChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)
        await channel.close()

    async def flush(self) -> None:
        for channel in list(self._channels):
            await channel.join()

    async def close_all(self) -> None:
        for channel in list(self._channels):
            await self.remove_channel(channel)


def get_hub() -> RealtimeHub:
    return ServiceProvider.get_service(RealtimeHub)

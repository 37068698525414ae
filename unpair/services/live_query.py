"""Live queries: push the latest snapshot of a query to a callback while subscribed.

Each LiveQuery owns one background task that re-runs its query on an
interval and hands the full result to `on_snapshot` whenever it differs from
the last one delivered. The first snapshot is always delivered. `stop()`
cancels the task, after which no further callbacks fire.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

from unpair.services import conversations as conversation_service
from unpair.services import listings as listing_service
from unpair.utils.config import AppConfig
from unpair.utils.logging import get_structured_logger, get_correlation_id

logger = get_structured_logger(__name__)

Snapshot = list[dict]
SnapshotCallback = Callable[[Snapshot], Any]
ErrorCallback = Callable[[Exception], Any]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class LiveQuery:
    """Polling subscription to a query."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Snapshot]],
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.name = name
        self.fetch = fetch
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else AppConfig.LIVE_QUERY_INTERVAL_SECONDS
        )
        self.last_snapshot: Optional[Snapshot] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "LiveQuery":
        if self.active:
            return self
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Live query subscribed",
            correlation_id=get_correlation_id(),
            live_query=self.name,
            interval_seconds=self.interval_seconds
        )
        return self

    async def stop(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("Live query ended with an error", live_query=self.name, error=str(e))
        logger.info("Live query unsubscribed", live_query=self.name)

    async def _report(self, message: str, error: Exception) -> None:
        logger.error(message, live_query=self.name, error=str(error), error_type=type(error).__name__)
        if self.on_error is None:
            return
        try:
            await _maybe_await(self.on_error(error))
        except Exception as e:
            logger.error("Live query error callback failed", live_query=self.name, error=str(e))

    async def poll_once(self) -> bool:
        """Run the query once; returns True when a new snapshot was delivered.

        Errors from the query or from on_snapshot go to on_error and never
        end the subscription.
        """
        try:
            snapshot = await self.fetch()
        except Exception as e:
            await self._report("Live query fetch failed", e)
            return False

        if snapshot == self.last_snapshot:
            return False

        self.last_snapshot = snapshot
        logger.debug(
            "Live query snapshot changed",
            live_query=self.name,
            rows=len(snapshot)
        )
        try:
            await _maybe_await(self.on_snapshot(snapshot))
        except Exception as e:
            await self._report("Live query snapshot callback failed", e)
        return True

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)


def _dump(models) -> Snapshot:
    return [model.model_dump(mode="json") for model in models]


def watch_messages(conversation_id: str, on_snapshot: SnapshotCallback, **kwargs) -> LiveQuery:
    """Messages of one conversation, oldest first."""
    async def fetch() -> Snapshot:
        return _dump(await conversation_service.fetch_messages(conversation_id))

    return LiveQuery(f"messages:{conversation_id}", fetch, on_snapshot, **kwargs).start()


def watch_conversations(user_id: str, on_snapshot: SnapshotCallback, **kwargs) -> LiveQuery:
    """A user's conversations, most recent activity first."""
    async def fetch() -> Snapshot:
        return _dump(await conversation_service.fetch_conversations(user_id))

    return LiveQuery(f"conversations:{user_id}", fetch, on_snapshot, **kwargs).start()


def watch_notifications(user_id: str, on_snapshot: SnapshotCallback, **kwargs) -> LiveQuery:
    async def fetch() -> Snapshot:
        return _dump(await listing_service.list_notifications(user_id))

    return LiveQuery(f"notifications:{user_id}", fetch, on_snapshot, **kwargs).start()


def watch_feed(on_snapshot: SnapshotCallback, limit: Optional[int] = None, **kwargs) -> LiveQuery:
    """Home feed, newest listings first."""
    async def fetch() -> Snapshot:
        return _dump(await listing_service.list_feed(limit))

    return LiveQuery("feed", fetch, on_snapshot, **kwargs).start()

"""Watch subscription: keeps one ResourceStore consistent with the API server.

State machine::

    CONNECTING --list+replace--> SYNCED --stream ends--> CONNECTING
        ^                          |
        |                       failure
        +---- back-off ---- DISCONNECTED

Each session lists the collection, replaces the store, then streams events
from the listing's resourceVersion.  The stream feeds an ``asyncio.Queue``
drained by a single consumer, so events for a name are applied in arrival
order.  A separate resync task relists every ``resync_interval`` seconds to
heal events the transport dropped.

Nothing raised by the authority escapes ``run()``: failures are logged,
counted, and followed by a relist.  Readers keep seeing the last-known store
contents throughout.
"""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from volm.cache.store import ResourceStore, is_newer
from volm.collector.authority import ResourceAuthority
from volm.errors import TransientStreamError
from volm.models.resources import (
    ClaimRecord,
    SubscriptionState,
    WatchEvent,
    WatchEventType,
    WorkloadRecord,
)
from volm.observability.logging import get_logger
from volm.observability.metrics import resyncs_total, watch_events_total, watch_reconnects_total

_log = get_logger("collector.watcher")

T = TypeVar("T", ClaimRecord, WorkloadRecord)

_DEFAULT_RESYNC_INTERVAL = 60.0
_DEFAULT_BACKOFF_INITIAL = 1.0
_DEFAULT_BACKOFF_MAX = 30.0
_QUEUE_MAXSIZE = 1024


class WatchSubscription(Generic[T]):
    """List-then-watch loop for one resource kind.

    Args:
        store:            Store this subscription owns the write side of.
        authority:        List/watch source for the same kind.
        resync_interval:  Seconds between periodic full relists.
        backoff_initial:  First delay after a failed session.
        backoff_max:      Upper bound for the doubling back-off.
    """

    def __init__(
        self,
        store: ResourceStore[T],
        authority: ResourceAuthority[T],
        resync_interval: float = _DEFAULT_RESYNC_INTERVAL,
        backoff_initial: float = _DEFAULT_BACKOFF_INITIAL,
        backoff_max: float = _DEFAULT_BACKOFF_MAX,
    ) -> None:
        self._store = store
        self._authority = authority
        self._resync_interval = resync_interval
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

        self._state = SubscriptionState.STOPPED
        self._synced = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._log = _log.bind(kind=authority.kind)

    @property
    def kind(self) -> str:
        return self._authority.kind

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def synced(self) -> bool:
        """True once at least one listing has been applied to the store."""
        return self._synced.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the watch loop and the periodic resync as background tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.run(), name=f"watch-{self.kind}"),
            asyncio.create_task(self._resync_loop(), name=f"resync-{self.kind}"),
        ]
        self._log.info("watch subscription started", resync_interval=self._resync_interval)

    async def stop(self) -> None:
        """Cancel background tasks and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._set_state(SubscriptionState.STOPPED)

    async def wait_until_synced(self, timeout: float | None = None) -> bool:
        """Wait for the first listing.  Returns False if *timeout* elapses."""
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect, stream, and reconnect forever.  Only cancellation ends it."""
        backoff = self._backoff_initial
        first = True
        while True:
            self._set_state(SubscriptionState.CONNECTING)
            if not first:
                watch_reconnects_total.labels(kind=self.kind).inc()
            first = False
            try:
                resource_version = await self.relist()
                self._set_state(SubscriptionState.SYNCED)
                backoff = self._backoff_initial
                await self._stream(resource_version)
                self._log.debug("watch stream closed by server; relisting")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._set_state(SubscriptionState.DISCONNECTED)
                self._log.warning(
                    "watch session failed; relisting after back-off",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    retry_in=backoff,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)

    async def relist(self) -> str:
        """List the collection, replace the store, and return the resourceVersion."""
        try:
            listing = await self._authority.list()
        except TransientStreamError:
            resyncs_total.labels(kind=self.kind, outcome="error").inc()
            raise
        except Exception as exc:
            # UpstreamError, or a record the authority could not parse
            resyncs_total.labels(kind=self.kind, outcome="error").inc()
            raise TransientStreamError(self.kind, str(exc) or type(exc).__name__) from exc
        self._store.replace(listing.records, snapshot_version=listing.resource_version)
        resyncs_total.labels(kind=self.kind, outcome="ok").inc()
        self._synced.set()
        self._log.debug("relisted", records=len(listing.records), resource_version=listing.resource_version)
        return listing.resource_version

    async def _stream(self, resource_version: str) -> None:
        """Run one watch session: producer feeds the queue, consumer applies."""
        queue: asyncio.Queue[WatchEvent[T] | None] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        consumer = asyncio.create_task(self._consume(queue), name=f"apply-{self.kind}")
        try:
            async for event in self._authority.watch(resource_version):
                if consumer.done():
                    consumer.result()
                    break
                await queue.put(event)
        finally:
            # Let the consumer drain what was already received, then stop it.
            if not consumer.done():
                try:
                    queue.put_nowait(None)
                except asyncio.QueueFull:
                    consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

    async def _consume(self, queue: asyncio.Queue[WatchEvent[T] | None]) -> None:
        while True:
            event = await queue.get()
            if event is None:
                return
            self.apply(event)

    def apply(self, event: WatchEvent[T]) -> None:
        """Apply one event to the store.

        An event older than the stored record for the same name (for example
        one still queued from a session a resync has since overtaken) is
        dropped.
        """
        current = self._store.get(event.record.name)
        if current is not None and is_newer(current.resource_version, event.record.resource_version):
            self._log.debug(
                "stale event skipped",
                name=event.record.name,
                type=event.type.value,
                resource_version=event.record.resource_version,
                stored_version=current.resource_version,
            )
            return
        if event.type is WatchEventType.DELETED:
            self._store.remove(event.record.name)
        else:
            self._store.upsert(event.record)
        watch_events_total.labels(kind=self.kind, type=event.type.value).inc()

    async def _resync_loop(self) -> None:
        """Relist on a fixed interval, independently of the event stream."""
        while True:
            await asyncio.sleep(self._resync_interval)
            if self._state is not SubscriptionState.SYNCED:
                # run() relists on its own when it reconnects
                continue
            try:
                await self.relist()
            except TransientStreamError as exc:
                self._log.warning("periodic resync failed", error=str(exc))
            except Exception as exc:
                resyncs_total.labels(kind=self.kind, outcome="error").inc()
                self._log.warning("periodic resync failed", error=str(exc), error_type=type(exc).__name__)

    def _set_state(self, state: SubscriptionState) -> None:
        if state is not self._state:
            self._log.info("subscription state changed", old=self._state.value, new=state.value)
            self._state = state

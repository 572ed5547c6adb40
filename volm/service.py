"""VolumeService: binds the configured selector to the query and mutation paths.

The HTTP layer talks only to this facade, so it never sees the selector, the
stores, or the authority directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from volm.models.resources import VolumeView
from volm.query.selector import Selector

if TYPE_CHECKING:
    from volm.cache.store import ResourceStore
    from volm.collector.watcher import WatchSubscription
    from volm.mutation.gateway import MutationGateway
    from volm.query.engine import VolumeQueryEngine


@dataclass(frozen=True)
class StoreStatus:
    """Health of one mirrored kind."""

    kind: str
    state: str
    synced: bool
    records: int


class VolumeService:
    """Request-facing operations with the startup selector applied."""

    def __init__(
        self,
        engine: VolumeQueryEngine,
        gateway: MutationGateway,
        selector: Selector,
        namespace: str,
        subscriptions: list[tuple[WatchSubscription, ResourceStore]] | None = None,
    ) -> None:
        self._engine = engine
        self._gateway = gateway
        self.selector = selector
        self.namespace = namespace
        self._subscriptions = subscriptions or []

    def list_volumes(self) -> list[VolumeView]:
        return self._engine.list_volumes(self.selector)

    def get_volume(self, name: str) -> VolumeView:
        return self._engine.get_volume(name, self.selector)

    async def delete_volume(self, name: str) -> None:
        await self._gateway.delete_volume(name, self.selector)

    def status(self) -> list[StoreStatus]:
        return [
            StoreStatus(
                kind=subscription.kind,
                state=subscription.state.value,
                synced=subscription.synced,
                records=len(store),
            )
            for subscription, store in self._subscriptions
        ]

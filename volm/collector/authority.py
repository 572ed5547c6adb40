"""Cluster-state authority: the Kubernetes API as seen by the cache.

``ResourceAuthority`` is the list + watch contract a WatchSubscription needs.
``ClaimAuthority`` adds the point read and delete used by the mutation
gateway.  The Kubernetes implementations translate raw API objects into
typed records at this boundary, so nothing downstream handles raw dicts,
and translate API failures into NotFoundError / UpstreamError.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Generic, TypeVar

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from volm.errors import NotFoundError, TransientStreamError, UpstreamError
from volm.models.resources import (
    ClaimRecord,
    ResourceListing,
    WatchEvent,
    WatchEventType,
    WorkloadRecord,
    claim_from_raw,
    workload_from_raw,
)
from volm.observability.logging import get_logger

_log = get_logger("collector.authority")

T = TypeVar("T", ClaimRecord, WorkloadRecord)
R = TypeVar("R")

_EVENT_TYPES = {t.value: t for t in WatchEventType}


class ResourceAuthority(ABC, Generic[T]):
    """List and watch one resource collection in one namespace."""

    kind: str = ""

    @abstractmethod
    async def list(self) -> ResourceListing[T]:
        """Return every record plus the collection resourceVersion."""

    @abstractmethod
    def watch(self, resource_version: str) -> AsyncIterator[WatchEvent[T]]:
        """Yield typed events newer than *resource_version*.

        The iterator ends when the server closes the stream; transport
        failures raise UpstreamError or TransientStreamError.
        """


class ClaimAuthority(ResourceAuthority[ClaimRecord]):
    """Claim collection with live point reads and deletes."""

    kind = "PersistentVolumeClaim"

    @abstractmethod
    async def get(self, name: str) -> ClaimRecord:
        """Fetch the live claim.  Raises NotFoundError if it does not exist."""

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Delete the claim upstream."""


# ---------------------------------------------------------------------------
# Kubernetes implementations
# ---------------------------------------------------------------------------


class KubernetesAuthority(ResourceAuthority[T]):
    """CoreV1Api-backed list/watch for one namespaced kind.

    Args:
        core_v1:         kubernetes_asyncio CoreV1Api instance.
        namespace:       Namespace to mirror.
        request_timeout: Seconds allowed for each list/get/delete call.
        watch_timeout:   Server-side watch timeout; the stream ends normally
                         after this many seconds and the subscription relists.
    """

    def __init__(
        self,
        core_v1: k8s_client.CoreV1Api,
        namespace: str,
        request_timeout: float = 10.0,
        watch_timeout: int = 300,
    ) -> None:
        if not namespace:
            raise ValueError("namespace must not be empty")
        self._v1 = core_v1
        self._namespace = namespace
        self._request_timeout = request_timeout
        self._watch_timeout = watch_timeout

    @property
    def namespace(self) -> str:
        return self._namespace

    @abstractmethod
    def _list_fn(self) -> Callable[..., Awaitable[Any]]:
        """The CoreV1Api list_namespaced_* method for this kind."""

    @abstractmethod
    def _parse(self, raw: dict[str, Any]) -> T:
        """Build a typed record from a camelCase API object."""

    def _to_raw(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self._v1.api_client.sanitize_for_serialization(obj)  # type: ignore[no-any-return]

    def _record(self, operation: str, obj: Any) -> T:
        """Parse one API object, raising UpstreamError if it is malformed."""
        try:
            return self._parse(self._to_raw(obj))
        except (ValueError, TypeError, AttributeError) as exc:
            raise UpstreamError(operation, f"malformed {self.kind} object: {exc}") from exc

    async def _call(self, operation: str, name: str, call: Awaitable[R]) -> R:
        """Await *call* within the request timeout, mapping failures."""
        try:
            return await asyncio.wait_for(call, timeout=self._request_timeout)
        except ApiException as exc:
            if exc.status == 404 and name:
                raise NotFoundError(self.kind, name) from exc
            raise UpstreamError(operation, str(exc.reason or exc), status=exc.status) from exc
        except TimeoutError as exc:
            raise UpstreamError(operation, f"timed out after {self._request_timeout}s") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(operation, str(exc)) from exc

    async def list(self) -> ResourceListing[T]:
        result = await self._call(
            f"list {self.kind}",
            "",
            self._list_fn()(namespace=self._namespace, _request_timeout=self._request_timeout),
        )
        records = [self._record(f"list {self.kind}", item) for item in result.items or []]
        resource_version = ""
        if result.metadata is not None and result.metadata.resource_version:
            resource_version = str(result.metadata.resource_version)
        return ResourceListing(records=records, resource_version=resource_version)

    async def watch(self, resource_version: str) -> AsyncIterator[WatchEvent[T]]:  # type: ignore[override]
        kwargs: dict[str, Any] = {
            "namespace": self._namespace,
            "timeout_seconds": self._watch_timeout,
            "_request_timeout": self._watch_timeout + self._request_timeout,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version

        try:
            async with k8s_watch.Watch() as w:
                async for event in w.stream(self._list_fn(), **kwargs):
                    typed = self._to_event(event)
                    if typed is not None:
                        yield typed
        except ApiException as exc:
            raise TransientStreamError(self.kind, f"{exc.status} {exc.reason}") from exc
        except (TimeoutError, aiohttp.ClientError) as exc:
            raise TransientStreamError(self.kind, str(exc) or type(exc).__name__) from exc

    def _to_event(self, event: dict[str, Any]) -> WatchEvent[T] | None:
        event_type = str(event.get("type", ""))
        raw = event.get("raw_object")
        if raw is None:
            raw = self._to_raw(event.get("object"))

        if event_type == "ERROR":
            code = raw.get("code") if isinstance(raw, dict) else None
            message = raw.get("message") if isinstance(raw, dict) else None
            raise TransientStreamError(self.kind, f"{code} {message}")

        typed = _EVENT_TYPES.get(event_type)
        if typed is None:
            # BOOKMARK and unknown types carry no object change
            _log.debug("watch_event_ignored", kind=self.kind, type=event_type)
            return None
        try:
            record = self._parse(raw)
        except (ValueError, TypeError, AttributeError) as exc:
            raise TransientStreamError(self.kind, f"malformed {event_type} object: {exc}") from exc
        return WatchEvent(type=typed, record=record)


class KubernetesWorkloadAuthority(KubernetesAuthority[WorkloadRecord]):
    """Pods of one namespace."""

    kind = "Pod"

    def _list_fn(self) -> Callable[..., Awaitable[Any]]:
        return self._v1.list_namespaced_pod  # type: ignore[no-any-return]

    def _parse(self, raw: dict[str, Any]) -> WorkloadRecord:
        return workload_from_raw(raw)


class KubernetesClaimAuthority(KubernetesAuthority[ClaimRecord], ClaimAuthority):
    """PersistentVolumeClaims of one namespace, including live get/delete."""

    kind = "PersistentVolumeClaim"

    def _list_fn(self) -> Callable[..., Awaitable[Any]]:
        return self._v1.list_namespaced_persistent_volume_claim  # type: ignore[no-any-return]

    def _parse(self, raw: dict[str, Any]) -> ClaimRecord:
        return claim_from_raw(raw)

    async def get(self, name: str) -> ClaimRecord:
        obj = await self._call(
            f"get {self.kind}",
            name,
            self._v1.read_namespaced_persistent_volume_claim(name=name, namespace=self._namespace),
        )
        return self._record(f"get {self.kind}", obj)

    async def delete(self, name: str) -> None:
        await self._call(
            f"delete {self.kind}",
            name,
            self._v1.delete_namespaced_persistent_volume_claim(name=name, namespace=self._namespace),
        )

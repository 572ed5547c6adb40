"""Tests for the CoreV1Api-backed authorities in volm.collector.authority."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from tests.factories import raw_claim, raw_pod
from volm.collector import authority as authority_module
from volm.collector.authority import KubernetesClaimAuthority, KubernetesWorkloadAuthority
from volm.errors import NotFoundError, TransientStreamError, UpstreamError
from volm.models.resources import WatchEventType, WorkloadPhase
from volm.mutation.gateway import MutationGateway
from volm.query.selector import Selector


def _listing(items: list[dict[str, Any]], rv: str | None = "42") -> SimpleNamespace:
    return SimpleNamespace(items=items, metadata=SimpleNamespace(resource_version=rv))


def _core_v1() -> MagicMock:
    v1 = MagicMock()
    v1.list_namespaced_persistent_volume_claim = AsyncMock(return_value=_listing([]))
    v1.list_namespaced_pod = AsyncMock(return_value=_listing([]))
    v1.read_namespaced_persistent_volume_claim = AsyncMock()
    v1.delete_namespaced_persistent_volume_claim = AsyncMock()
    return v1


class _FakeWatch:
    """Stand-in for kubernetes_asyncio.watch.Watch yielding scripted events."""

    events: list[Any] = []
    calls: list[dict[str, Any]] = []

    async def __aenter__(self) -> _FakeWatch:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def stream(self, func: Any, **kwargs: Any) -> _FakeWatch:
        _FakeWatch.calls.append({"func": func, **kwargs})
        self._items = iter(_FakeWatch.events)
        return self

    def __aiter__(self) -> _FakeWatch:
        return self

    async def __anext__(self) -> Any:
        try:
            item = next(self._items)
        except StopIteration:
            raise StopAsyncIteration from None
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture()
def fake_watch() -> Any:
    _FakeWatch.events = []
    _FakeWatch.calls = []
    with patch.object(authority_module.k8s_watch, "Watch", _FakeWatch):
        yield _FakeWatch


class TestConstruction:
    def test_empty_namespace_rejected(self) -> None:
        with pytest.raises(ValueError, match="namespace"):
            KubernetesClaimAuthority(_core_v1(), "")


class TestList:
    async def test_list_parses_items_and_version(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_persistent_volume_claim.return_value = _listing(
            [raw_claim("pvc-1", labels={"team": "a"}), raw_claim("pvc-2")], rv="42"
        )
        listing = await KubernetesClaimAuthority(v1, "storage", request_timeout=5).list()

        assert [r.name for r in listing.records] == ["pvc-1", "pvc-2"]
        assert listing.records[0].labels == {"team": "a"}
        assert listing.resource_version == "42"
        v1.list_namespaced_persistent_volume_claim.assert_awaited_once_with(namespace="storage", _request_timeout=5)

    async def test_list_pods(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_pod.return_value = _listing([raw_pod("pod-1", claims=["data"])])
        listing = await KubernetesWorkloadAuthority(v1, "default").list()
        (record,) = listing.records
        assert record.claim_names == ("data",)
        assert record.phase is WorkloadPhase.RUNNING

    async def test_list_model_objects_are_serialized(self) -> None:
        v1 = _core_v1()
        model = object()
        v1.list_namespaced_persistent_volume_claim.return_value = _listing([model])
        v1.api_client.sanitize_for_serialization.return_value = raw_claim("from-model")
        listing = await KubernetesClaimAuthority(v1, "default").list()
        assert [r.name for r in listing.records] == ["from-model"]
        v1.api_client.sanitize_for_serialization.assert_called_once_with(model)

    async def test_list_without_metadata_version(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_persistent_volume_claim.return_value = _listing([], rv=None)
        listing = await KubernetesClaimAuthority(v1, "default").list()
        assert listing.resource_version == ""

    async def test_list_api_error_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_persistent_volume_claim.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(UpstreamError) as excinfo:
            await KubernetesClaimAuthority(v1, "default").list()
        assert excinfo.value.status == 403

    async def test_list_404_without_name_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(UpstreamError):
            await KubernetesClaimAuthority(v1, "missing-ns").list()


class TestGetAndDelete:
    async def test_get_returns_record(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.return_value = raw_claim("pvc-1", labels={"team": "a"}, rv="7")
        record = await KubernetesClaimAuthority(v1, "default").get("pvc-1")
        assert record.name == "pvc-1"
        assert record.resource_version == "7"
        v1.read_namespaced_persistent_volume_claim.assert_awaited_once_with(name="pvc-1", namespace="default")

    async def test_get_404_is_not_found(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(NotFoundError) as excinfo:
            await KubernetesClaimAuthority(v1, "default").get("gone")
        assert excinfo.value.name == "gone"

    async def test_get_500_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.side_effect = ApiException(status=500, reason="Internal")
        with pytest.raises(UpstreamError) as excinfo:
            await KubernetesClaimAuthority(v1, "default").get("pvc-1")
        assert excinfo.value.status == 500

    async def test_get_timeout_is_upstream(self) -> None:
        v1 = _core_v1()

        async def slow(**_: Any) -> None:
            await asyncio.sleep(1)

        v1.read_namespaced_persistent_volume_claim = slow
        with pytest.raises(UpstreamError, match="timed out"):
            await KubernetesClaimAuthority(v1, "default", request_timeout=0.01).get("pvc-1")

    async def test_connection_error_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(UpstreamError):
            await KubernetesClaimAuthority(v1, "default").get("pvc-1")

    async def test_delete_calls_api(self) -> None:
        v1 = _core_v1()
        await KubernetesClaimAuthority(v1, "default").delete("pvc-1")
        v1.delete_namespaced_persistent_volume_claim.assert_awaited_once_with(name="pvc-1", namespace="default")

    async def test_delete_404_is_not_found(self) -> None:
        v1 = _core_v1()
        v1.delete_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(NotFoundError):
            await KubernetesClaimAuthority(v1, "default").delete("pvc-1")


class TestWatch:
    async def _collect(self, authority: Any, rv: str = "10") -> list[Any]:
        return [event async for event in authority.watch(rv)]

    async def test_events_are_typed(self, fake_watch: Any) -> None:
        fake_watch.events = [
            {"type": "ADDED", "raw_object": raw_claim("pvc-1", rv="11")},
            {"type": "BOOKMARK", "raw_object": {"metadata": {"resourceVersion": "12"}}},
            {"type": "MODIFIED", "raw_object": raw_claim("pvc-1", labels={"team": "a"}, rv="13")},
            {"type": "DELETED", "raw_object": raw_claim("pvc-1", rv="14")},
        ]
        v1 = _core_v1()
        events = await self._collect(KubernetesClaimAuthority(v1, "default", watch_timeout=120))

        assert [e.type for e in events] == [WatchEventType.ADDED, WatchEventType.MODIFIED, WatchEventType.DELETED]
        assert events[1].record.labels == {"team": "a"}
        (call,) = fake_watch.calls
        assert call["func"] is v1.list_namespaced_persistent_volume_claim
        assert call["namespace"] == "default"
        assert call["resource_version"] == "10"
        assert call["timeout_seconds"] == 120

    async def test_empty_version_not_sent(self, fake_watch: Any) -> None:
        await self._collect(KubernetesWorkloadAuthority(_core_v1(), "default"), rv="")
        assert "resource_version" not in fake_watch.calls[0]

    async def test_error_event_raises_transient(self, fake_watch: Any) -> None:
        fake_watch.events = [
            {"type": "ERROR", "raw_object": {"kind": "Status", "code": 410, "message": "too old resource version"}},
        ]
        with pytest.raises(TransientStreamError, match="410"):
            await self._collect(KubernetesClaimAuthority(_core_v1(), "default"))

    async def test_api_exception_raises_transient(self, fake_watch: Any) -> None:
        fake_watch.events = [ApiException(status=500, reason="boom")]
        with pytest.raises(TransientStreamError):
            await self._collect(KubernetesClaimAuthority(_core_v1(), "default"))

    async def test_client_error_raises_transient(self, fake_watch: Any) -> None:
        fake_watch.events = [
            {"type": "ADDED", "raw_object": raw_pod("pod-1")},
            aiohttp.ClientPayloadError("connection reset"),
        ]
        received: list[Any] = []
        with pytest.raises(TransientStreamError):
            async for event in KubernetesWorkloadAuthority(_core_v1(), "default").watch("1"):
                received.append(event)
        assert [e.record.name for e in received] == ["pod-1"]

    async def test_malformed_object_raises_transient(self, fake_watch: Any) -> None:
        fake_watch.events = [
            {"type": "MODIFIED", "raw_object": raw_claim("pvc-1", deletionTimestamp="not-a-time")},
        ]
        with pytest.raises(TransientStreamError, match="malformed"):
            await self._collect(KubernetesClaimAuthority(_core_v1(), "default"))


class TestMalformedObjects:
    async def test_list_with_bad_timestamp_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.list_namespaced_persistent_volume_claim.return_value = _listing(
            [raw_claim("pvc-1"), raw_claim("pvc-2", deletionTimestamp="not-a-time")]
        )
        with pytest.raises(UpstreamError, match="malformed"):
            await KubernetesClaimAuthority(v1, "default").list()

    async def test_get_with_bad_timestamp_is_upstream(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.return_value = raw_claim(
            "pvc-1", deletionTimestamp="not-a-time"
        )
        with pytest.raises(UpstreamError) as excinfo:
            await KubernetesClaimAuthority(v1, "default").get("pvc-1")
        assert excinfo.value.operation == "get PersistentVolumeClaim"

    async def test_gateway_reports_malformed_claim_as_upstream(self) -> None:
        v1 = _core_v1()
        v1.read_namespaced_persistent_volume_claim.return_value = raw_claim(
            "pvc-1", deletionTimestamp="not-a-time"
        )
        with pytest.raises(UpstreamError):
            await MutationGateway(KubernetesClaimAuthority(v1, "default")).delete_volume("pvc-1", Selector())
        v1.delete_namespaced_persistent_volume_claim.assert_not_awaited()

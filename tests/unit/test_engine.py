"""Tests for volm.query.engine.VolumeQueryEngine: filtering and the claim/pod join."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from tests.factories import make_claim, make_workload
from volm.cache.store import ResourceStore
from volm.errors import NotFoundError, SelectorMismatchError
from volm.models.resources import ClaimRecord, WorkloadPhase, WorkloadRecord
from volm.query.engine import VolumeQueryEngine
from volm.query.selector import Selector, parse_selector

Stores = tuple[ResourceStore[ClaimRecord], ResourceStore[WorkloadRecord]]


class TestListVolumes:
    def test_join_reports_exactly_one_user(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        views = {v.name: v for v in engine.list_volumes(Selector())}
        assert [w.name for w in views["pvc-1"].used_by] == ["pod-a"]
        assert views["pvc-2"].used_by == []

    def test_selector_filters_claims(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        views = engine.list_volumes(parse_selector("team=a"))
        assert [v.name for v in views] == ["pvc-1"]

    def test_selector_on_missing_key_excludes_all(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        assert engine.list_volumes(parse_selector("tier=gold")) == []

    def test_empty_stores(
        self,
        claim_store: ResourceStore[ClaimRecord],
        workload_store: ResourceStore[WorkloadRecord],
    ) -> None:
        assert VolumeQueryEngine(claim_store, workload_store).list_volumes(Selector()) == []

    def test_workload_with_several_claims_appears_under_each(
        self,
        claim_store: ResourceStore[ClaimRecord],
        workload_store: ResourceStore[WorkloadRecord],
    ) -> None:
        claim_store.upsert(make_claim("data"))
        claim_store.upsert(make_claim("logs"))
        workload_store.upsert(make_workload("pod-1", claims=("data", "logs")))
        workload_store.upsert(make_workload("pod-2", claims=("data",)))
        views = {v.name: v for v in VolumeQueryEngine(claim_store, workload_store).list_volumes(Selector())}
        assert sorted(w.name for w in views["data"].used_by) == ["pod-1", "pod-2"]
        assert [w.name for w in views["logs"].used_by] == ["pod-1"]

    def test_terminating_derived_from_deletion_marker(
        self,
        claim_store: ResourceStore[ClaimRecord],
        workload_store: ResourceStore[WorkloadRecord],
    ) -> None:
        since = datetime(2026, 3, 1, 13, 0, tzinfo=UTC)
        claim_store.upsert(make_claim("going", deletion_timestamp=since))
        claim_store.upsert(make_claim("staying"))
        views = {v.name: v for v in VolumeQueryEngine(claim_store, workload_store).list_volumes(Selector())}
        assert views["going"].terminating is True
        assert views["going"].terminating_since == since
        assert views["staying"].terminating is False
        assert views["staying"].terminating_since is None

    def test_workload_summary_fields(
        self,
        claim_store: ResourceStore[ClaimRecord],
        workload_store: ResourceStore[WorkloadRecord],
    ) -> None:
        claim_store.upsert(make_claim("data"))
        workload_store.upsert(make_workload("pod-1", claims=("data",), phase=WorkloadPhase.PENDING))
        (view,) = VolumeQueryEngine(claim_store, workload_store).list_volumes(Selector())
        (summary,) = view.used_by
        assert summary.phase is WorkloadPhase.PENDING
        assert summary.labels == {"app": "pod-1"}
        assert summary.terminating is False


class TestGetVolume:
    def test_missing_is_not_found(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        with pytest.raises(NotFoundError) as excinfo:
            engine.get_volume("missing", Selector())
        assert excinfo.value.name == "missing"

    def test_selector_mismatch_is_distinct_from_not_found(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        with pytest.raises(SelectorMismatchError) as excinfo:
            engine.get_volume("pvc-2", parse_selector("team=a"))
        assert not isinstance(excinfo.value, NotFoundError)
        assert excinfo.value.key == "team"
        assert excinfo.value.expected == "a"
        assert excinfo.value.actual == "b"

    def test_match_returns_joined_view(self, populated_stores: Stores) -> None:
        engine = VolumeQueryEngine(*populated_stores)
        view = engine.get_volume("pvc-1", parse_selector("team=a"))
        assert view.name == "pvc-1"
        assert view.labels == {"team": "a"}
        assert view.status == {"phase": "Bound"}
        assert [w.name for w in view.used_by] == ["pod-a"]

    def test_reflects_store_updates(self, populated_stores: Stores) -> None:
        claims, workloads = populated_stores
        engine = VolumeQueryEngine(claims, workloads)
        workloads.upsert(make_workload("pod-c", claims=("pvc-2",)))
        assert [w.name for w in engine.get_volume("pvc-2", Selector()).used_by] == ["pod-c"]
        claims.remove("pvc-2")
        with pytest.raises(NotFoundError):
            engine.get_volume("pvc-2", Selector())

"""Shared fixtures for volm tests."""

from __future__ import annotations

import pytest

from tests.factories import make_claim, make_workload
from volm.cache.store import ResourceStore
from volm.models.resources import ClaimRecord, WorkloadRecord

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def claim_store() -> ResourceStore[ClaimRecord]:
    return ResourceStore[ClaimRecord]("PersistentVolumeClaim")


@pytest.fixture()
def workload_store() -> ResourceStore[WorkloadRecord]:
    return ResourceStore[WorkloadRecord]("Pod")


@pytest.fixture()
def populated_stores(
    claim_store: ResourceStore[ClaimRecord],
    workload_store: ResourceStore[WorkloadRecord],
) -> tuple[ResourceStore[ClaimRecord], ResourceStore[WorkloadRecord]]:
    """pvc-1 (team=a) used by pod-a; pvc-2 (team=b) unused; pod-b uses nothing."""
    claim_store.upsert(make_claim("pvc-1", labels={"team": "a"}))
    claim_store.upsert(make_claim("pvc-2", labels={"team": "b"}))
    workload_store.upsert(make_workload("pod-a", claims=("pvc-1",)))
    workload_store.upsert(make_workload("pod-b"))
    return claim_store, workload_store

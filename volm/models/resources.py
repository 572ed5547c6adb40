"""Cached resource records, watch events, and query views."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, Protocol, TypeVar


class WorkloadPhase(StrEnum):
    """Pod lifecycle phase as reported by the API server."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


class WatchEventType(StrEnum):
    """Kind of change carried by a watch event."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class SubscriptionState(StrEnum):
    """Lifecycle state of a WatchSubscription."""

    CONNECTING = "connecting"
    SYNCED = "synced"
    DISCONNECTED = "disconnected"
    STOPPED = "stopped"


class NamedRecord(Protocol):
    """Anything a ResourceStore can hold: unique name plus resource version."""

    @property
    def name(self) -> str: ...

    @property
    def resource_version(self) -> str: ...


@dataclass(frozen=True)
class ClaimRecord:
    """Last-known state of a PersistentVolumeClaim."""

    name: str
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    status: dict[str, Any] = field(default_factory=dict)
    spec: dict[str, Any] = field(default_factory=dict)
    deletion_timestamp: datetime | None = None

    @property
    def terminating(self) -> bool:
        return self.deletion_timestamp is not None


@dataclass(frozen=True)
class WorkloadRecord:
    """Last-known state of a Pod, reduced to what the claim join needs."""

    name: str
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    phase: WorkloadPhase = WorkloadPhase.UNKNOWN
    start_time: datetime | None = None
    deletion_timestamp: datetime | None = None
    claim_names: tuple[str, ...] = ()

    @property
    def terminating(self) -> bool:
        return self.deletion_timestamp is not None

    def references(self, claim_name: str) -> bool:
        return claim_name in self.claim_names


RecordT = TypeVar("RecordT", ClaimRecord, WorkloadRecord)


@dataclass(frozen=True)
class WatchEvent(Generic[RecordT]):
    """A single typed change delivered by a watch stream."""

    type: WatchEventType
    record: RecordT


@dataclass(frozen=True)
class ResourceListing(Generic[RecordT]):
    """Result of a full list call: every record plus the collection version."""

    records: list[RecordT]
    resource_version: str = ""


@dataclass(frozen=True)
class WorkloadSummary:
    """A pod that mounts a given claim."""

    name: str
    labels: dict[str, str]
    annotations: dict[str, str]
    phase: WorkloadPhase
    start_time: datetime | None
    terminating: bool
    terminating_since: datetime | None

    @classmethod
    def from_record(cls, record: WorkloadRecord) -> WorkloadSummary:
        return cls(
            name=record.name,
            labels=record.labels,
            annotations=record.annotations,
            phase=record.phase,
            start_time=record.start_time,
            terminating=record.terminating,
            terminating_since=record.deletion_timestamp,
        )


@dataclass(frozen=True)
class VolumeView:
    """Denormalized claim plus the pods currently using it.  Never stored."""

    name: str
    labels: dict[str, str]
    annotations: dict[str, str]
    status: dict[str, Any]
    spec: dict[str, Any]
    terminating: bool
    terminating_since: datetime | None
    used_by: list[WorkloadSummary] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Raw object parsing
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp from the API server, passing datetimes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _str_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def claim_from_raw(raw: dict[str, Any]) -> ClaimRecord:
    """Build a ClaimRecord from a camelCase PersistentVolumeClaim object."""
    metadata = raw.get("metadata") or {}
    return ClaimRecord(
        name=str(metadata.get("name", "")),
        resource_version=str(metadata.get("resourceVersion") or ""),
        labels=_str_map(metadata.get("labels")),
        annotations=_str_map(metadata.get("annotations")),
        status=dict(raw.get("status") or {}),
        spec=dict(raw.get("spec") or {}),
        deletion_timestamp=parse_timestamp(metadata.get("deletionTimestamp")),
    )


def workload_from_raw(raw: dict[str, Any]) -> WorkloadRecord:
    """Build a WorkloadRecord from a camelCase Pod object.

    Claim references come from ``spec.volumes[*].persistentVolumeClaim``;
    order is preserved and repeated references to one claim are collapsed.
    """
    metadata = raw.get("metadata") or {}
    spec = raw.get("spec") or {}
    status = raw.get("status") or {}

    claim_names: list[str] = []
    for volume in spec.get("volumes") or []:
        pvc = (volume or {}).get("persistentVolumeClaim")
        if not pvc:
            continue
        claim_name = pvc.get("claimName")
        if claim_name and claim_name not in claim_names:
            claim_names.append(str(claim_name))

    try:
        phase = WorkloadPhase(status.get("phase") or WorkloadPhase.UNKNOWN)
    except ValueError:
        phase = WorkloadPhase.UNKNOWN

    return WorkloadRecord(
        name=str(metadata.get("name", "")),
        resource_version=str(metadata.get("resourceVersion") or ""),
        labels=_str_map(metadata.get("labels")),
        annotations=_str_map(metadata.get("annotations")),
        phase=phase,
        start_time=parse_timestamp(status.get("startTime")),
        deletion_timestamp=parse_timestamp(metadata.get("deletionTimestamp")),
        claim_names=tuple(claim_names),
    )

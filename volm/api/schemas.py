"""Pydantic response models for the REST API.

Field aliases give the camelCase wire format
(``usedBy``, ``terminatingSince``, ``startTime``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from volm.models.resources import VolumeView, WorkloadSummary
from volm.service import StoreStatus


class _AliasedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PodInfo(_AliasedModel):
    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    phase: str
    start_time: datetime | None = Field(default=None, alias="startTime")
    terminating: bool
    terminating_since: datetime | None = Field(default=None, alias="terminatingSince")

    @classmethod
    def from_summary(cls, summary: WorkloadSummary) -> PodInfo:
        return cls(
            name=summary.name,
            labels=summary.labels,
            annotations=summary.annotations,
            phase=summary.phase.value,
            start_time=summary.start_time,
            terminating=summary.terminating,
            terminating_since=summary.terminating_since,
        )


class VolumeInfo(_AliasedModel):
    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    status: dict[str, Any] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)
    terminating: bool
    terminating_since: datetime | None = Field(default=None, alias="terminatingSince")
    used_by: list[PodInfo] = Field(default_factory=list, alias="usedBy")

    @classmethod
    def from_view(cls, view: VolumeView) -> VolumeInfo:
        return cls(
            name=view.name,
            labels=view.labels,
            annotations=view.annotations,
            status=view.status,
            spec=view.spec,
            terminating=view.terminating,
            terminating_since=view.terminating_since,
            used_by=[PodInfo.from_summary(s) for s in view.used_by],
        )


class ServiceInfo(BaseModel):
    version: str
    mode: str
    service: str


class DeleteResponse(BaseModel):
    status: bool = True


class StoreStatusResponse(BaseModel):
    kind: str
    state: str
    synced: bool
    records: int

    @classmethod
    def from_status(cls, status: StoreStatus) -> StoreStatusResponse:
        return cls(kind=status.kind, state=status.state, synced=status.synced, records=status.records)


class StatusResponse(BaseModel):
    namespace: str
    selector: str
    stores: list[StoreStatusResponse]


class ErrorResponse(BaseModel):
    error: str
    detail: str

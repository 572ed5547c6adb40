"""Core data structures for volm."""

from volm.models.config import VolmConfig
from volm.models.resources import (
    ClaimRecord,
    ResourceListing,
    SubscriptionState,
    VolumeView,
    WatchEvent,
    WatchEventType,
    WorkloadPhase,
    WorkloadRecord,
    WorkloadSummary,
)

__all__ = [
    "ClaimRecord",
    "ResourceListing",
    "SubscriptionState",
    "VolmConfig",
    "VolumeView",
    "WatchEvent",
    "WatchEventType",
    "WorkloadPhase",
    "WorkloadRecord",
    "WorkloadSummary",
]

"""Collector package for volm.

Keeps the resource stores current from Kubernetes watch streams.

Submodules
----------
authority -- ResourceAuthority / ClaimAuthority contracts and their
             kubernetes-asyncio implementations.
watcher   -- WatchSubscription: list-then-watch, periodic resync,
             reconnect with exponential back-off.
"""

from volm.collector.authority import (
    ClaimAuthority,
    KubernetesClaimAuthority,
    KubernetesWorkloadAuthority,
    ResourceAuthority,
)
from volm.collector.watcher import WatchSubscription

__all__ = [
    "ClaimAuthority",
    "KubernetesClaimAuthority",
    "KubernetesWorkloadAuthority",
    "ResourceAuthority",
    "WatchSubscription",
]

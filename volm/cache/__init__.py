"""Cache layer for volm.

Provides the in-memory resource stores kept current by watch subscriptions.
Raw maps never leave this package; consumers get point lookups and
snapshot copies only.

Submodules:
    store -- Generic lock-guarded ResourceStore instantiated once per kind.
"""

from volm.cache.store import ResourceStore

__all__ = ["ResourceStore"]

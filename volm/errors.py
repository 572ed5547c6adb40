"""Error taxonomy shared by the cache, query, and mutation paths.

NotFoundError and SelectorMismatchError are expected outcomes reported to
callers as distinct conditions.  UpstreamError wraps any failed call to the
Kubernetes API.  TransientStreamError never leaves a WatchSubscription.
"""

from __future__ import annotations


class VolmError(Exception):
    """Base class for all volm errors."""


class NotFoundError(VolmError):
    """The named resource does not exist (in the cache or upstream)."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} {name!r} not found")
        self.kind = kind
        self.name = name


class SelectorMismatchError(VolmError):
    """The resource exists but its labels fail the configured selector.

    ``actual`` is None when the required label key is missing entirely.
    """

    def __init__(self, name: str, key: str, expected: str, actual: str | None) -> None:
        if actual is None:
            detail = f"labels of {name!r} do not contain key {key!r}"
        else:
            detail = f"label {key!r} of {name!r} is {actual!r}, expected {expected!r}"
        super().__init__(detail)
        self.name = name
        self.key = key
        self.expected = expected
        self.actual = actual


class UpstreamError(VolmError):
    """A call to the cluster-state authority failed."""

    def __init__(self, operation: str, detail: str, status: int | None = None) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
        self.status = status


class TransientStreamError(VolmError):
    """A watch stream or listing failed; recovered by relisting."""

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(f"{kind} watch stream error: {detail}")
        self.kind = kind
        self.detail = detail


class InvalidSelectorError(VolmError, ValueError):
    """A selector expression could not be parsed."""

    def __init__(self, expression: str, term: str) -> None:
        super().__init__(f"Malformed selector {expression!r}: term {term!r} is not key=value")
        self.expression = expression
        self.term = term

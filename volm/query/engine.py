"""Claim/pod join over the two resource stores.

The engine is stateless and read-only: each call takes one snapshot of each
store and works on the copies, so it never holds a store lock while joining
and never touches the network.  The two snapshots are taken independently
and may reflect slightly different moments.
"""

from __future__ import annotations

from volm.cache.store import ResourceStore
from volm.errors import NotFoundError
from volm.models.resources import ClaimRecord, VolumeView, WorkloadRecord, WorkloadSummary
from volm.query.selector import Selector

_CLAIM_KIND = "PersistentVolumeClaim"


def workloads_using(workloads: list[WorkloadRecord], claim_name: str) -> list[WorkloadSummary]:
    """Summaries of every workload whose claim references include *claim_name*."""
    return [WorkloadSummary.from_record(w) for w in workloads if w.references(claim_name)]


def build_view(claim: ClaimRecord, used_by: list[WorkloadSummary]) -> VolumeView:
    # terminating is derived from the deletion marker only; see
    # https://github.com/kubernetes/kubernetes/issues/22839
    return VolumeView(
        name=claim.name,
        labels=claim.labels,
        annotations=claim.annotations,
        status=claim.status,
        spec=claim.spec,
        terminating=claim.terminating,
        terminating_since=claim.deletion_timestamp,
        used_by=used_by,
    )


class VolumeQueryEngine:
    """Answers claim queries from the claim and workload stores."""

    def __init__(
        self,
        claims: ResourceStore[ClaimRecord],
        workloads: ResourceStore[WorkloadRecord],
    ) -> None:
        self._claims = claims
        self._workloads = workloads

    def list_volumes(self, selector: Selector) -> list[VolumeView]:
        """Every claim passing *selector*, each joined with its workloads."""
        claims = [c for c in self._claims.list() if selector.matches(c.labels)]
        if not claims:
            return []

        by_claim: dict[str, list[WorkloadSummary]] = {}
        for workload in self._workloads.list():
            if not workload.claim_names:
                continue
            summary = WorkloadSummary.from_record(workload)
            for claim_name in workload.claim_names:
                by_claim.setdefault(claim_name, []).append(summary)

        return [build_view(claim, by_claim.get(claim.name, [])) for claim in claims]

    def get_volume(self, name: str, selector: Selector) -> VolumeView:
        """One claim by name.

        Raises:
            NotFoundError:         no claim named *name* is cached.
            SelectorMismatchError: the claim exists but fails *selector*.
        """
        claim = self._claims.get(name)
        if claim is None:
            raise NotFoundError(_CLAIM_KIND, name)
        selector.check(name, claim.labels)
        return build_view(claim, workloads_using(self._workloads.list(), name))

"""Claim deletion, validated against the live object.

The gateway reads the claim straight from the API server rather than the
cache so the selector is checked against the current generation, then issues
the delete.  Neither step touches the resource stores; the claim disappears
from the cache when its DELETED watch event arrives.
"""

from __future__ import annotations

from volm.collector.authority import ClaimAuthority
from volm.errors import NotFoundError, SelectorMismatchError, UpstreamError
from volm.observability.logging import get_logger
from volm.observability.metrics import delete_requests_total
from volm.query.selector import Selector

_log = get_logger("mutation.gateway")


class MutationGateway:
    """Forwards selector-checked deletes to the claim authority."""

    def __init__(self, authority: ClaimAuthority) -> None:
        self._authority = authority

    async def delete_volume(self, name: str, selector: Selector) -> None:
        """Delete claim *name* if it exists upstream and satisfies *selector*.

        Raises:
            NotFoundError:         the claim does not exist upstream.
            SelectorMismatchError: the claim fails *selector*; nothing is deleted.
            UpstreamError:         the get or delete call failed.
        """
        try:
            claim = await self._authority.get(name)
        except NotFoundError:
            delete_requests_total.labels(outcome="not_found").inc()
            raise
        except UpstreamError as exc:
            delete_requests_total.labels(outcome="upstream_error").inc()
            _log.error("claim fetch failed", name=name, error=str(exc), status=exc.status)
            raise

        try:
            selector.check(name, claim.labels)
        except SelectorMismatchError as exc:
            delete_requests_total.labels(outcome="selector_mismatch").inc()
            _log.info("delete refused by selector", name=name, key=exc.key)
            raise

        try:
            await self._authority.delete(name)
        except NotFoundError:
            # Deleted by someone else between the get and the delete.
            delete_requests_total.labels(outcome="not_found").inc()
            raise
        except UpstreamError as exc:
            delete_requests_total.labels(outcome="upstream_error").inc()
            _log.error("claim delete failed", name=name, error=str(exc), status=exc.status)
            raise

        delete_requests_total.labels(outcome="deleted").inc()
        _log.info("claim deleted", name=name)

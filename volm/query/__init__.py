"""Read side of volm: label selectors and the claim/pod join.

Submodules:
    selector -- Immutable equality-based label selector and its parser.
    engine   -- VolumeQueryEngine over the claim and workload stores.
"""

from volm.query.engine import VolumeQueryEngine
from volm.query.selector import Selector, parse_selector

__all__ = ["Selector", "VolumeQueryEngine", "parse_selector"]

"""Equality-based label selector.

A selector is parsed once at startup from an expression such as
``team=a,tier=gold`` and is read-only afterwards, so it can be shared by
concurrent requests without locking.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from volm.errors import InvalidSelectorError, SelectorMismatchError


@dataclass(frozen=True)
class Selector:
    """Immutable set of required ``(key, value)`` label pairs (AND semantics)."""

    requirements: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, labels: Mapping[str, str]) -> Selector:
        return cls(tuple(sorted(labels.items())))

    @property
    def empty(self) -> bool:
        return not self.requirements

    def mismatch(self, labels: Mapping[str, str]) -> tuple[str, str, str | None] | None:
        """Return the first failing ``(key, expected, actual)``, or None on a match."""
        for key, expected in self.requirements:
            if key not in labels:
                return key, expected, None
            actual = labels[key]
            if actual != expected:
                return key, expected, actual
        return None

    def matches(self, labels: Mapping[str, str]) -> bool:
        return self.mismatch(labels) is None

    def check(self, name: str, labels: Mapping[str, str]) -> None:
        """Raise SelectorMismatchError if *labels* (of resource *name*) fail."""
        failure = self.mismatch(labels)
        if failure is not None:
            key, expected, actual = failure
            raise SelectorMismatchError(name, key, expected, actual)

    def __str__(self) -> str:
        return ",".join(f"{k}={v}" for k, v in self.requirements)


def parse_selector(expression: str) -> Selector:
    """Parse ``k1=v1,k2=v2`` into a Selector.

    An empty or whitespace-only expression yields the match-all selector.
    Any term without ``=`` or with an empty key raises InvalidSelectorError.
    Values may contain ``=``; only the first one splits.  A repeated key keeps
    its last value.
    """
    if not expression.strip():
        return Selector()

    required: dict[str, str] = {}
    for term in expression.split(","):
        key, sep, value = term.strip().partition("=")
        if not sep or not key.strip():
            raise InvalidSelectorError(expression, term)
        required[key.strip()] = value.strip()
    return Selector.from_mapping(required)

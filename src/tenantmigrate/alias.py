"""
Alias resolution for newly created destination portals.

The alias is derived from the migrated user's name and adjusted until it is
valid and free in the destination region:

    - characters outside [a-z0-9] are removed
    - too short: the product tag is prepended
    - too long: truncated to TRUNCATE_LENGTH characters
    - taken: a trailing number is incremented, otherwise "1" is appended

Every check returns a tagged AliasCheck instead of raising, so the resolution
loop is a plain state machine.

Example:
    >>> resolver = AliasResolver(MigrationConfig())
    >>> resolver.resolve("Alice", taken={"alice"})
    'alice1'
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from tenantmigrate.exceptions import AliasUnavailableError
from tenantmigrate.models import MigrationConfig

logger = logging.getLogger(__name__)

TRUNCATE_LENGTH = 50

# Bound on resolution steps; each step either fixes the length or moves the
# numeric suffix forward, so a free alias is found long before this.
MAX_RESOLUTION_STEPS = 10_000

_INVALID_CHARS = re.compile(r"[^a-z0-9]")
_TRAILING_NUMBER = re.compile(r"(\d+)$")


class AliasOutcome(Enum):
    OK = "ok"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    TAKEN = "taken"


@dataclass(frozen=True)
class AliasCheck:
    """Result of validating one candidate alias."""

    outcome: AliasOutcome
    alias: str

    @property
    def ok(self) -> bool:
        return self.outcome is AliasOutcome.OK


def normalize_alias(value: str) -> str:
    """Lower-case and drop every character outside [a-z0-9]."""
    return _INVALID_CHARS.sub("", value.lower())


def next_alias(alias: str) -> str:
    """
    Next candidate after a taken alias.

    A trailing number is incremented with carry (alice9 -> alice10);
    otherwise "1" is appended.
    """
    match = _TRAILING_NUMBER.search(alias)
    if match is None:
        return f"{alias}1"
    digits = match.group(1)
    incremented = str(int(digits) + 1).zfill(len(digits))
    return alias[: match.start()] + incremented


class AliasResolver:
    """
    Derives a valid, unused alias from a seed.

    Attributes:
        min_length: Shortest acceptable alias.
        max_length: Longest acceptable alias.
        prefix: Product tag prepended to aliases that are too short.
    """

    def __init__(self, config: MigrationConfig | None = None) -> None:
        config = config or MigrationConfig()
        self.min_length = config.alias_min_length
        self.max_length = config.alias_max_length
        self.prefix = config.alias_prefix

    def check(self, alias: str, taken: set[str]) -> AliasCheck:
        """Validate a normalized candidate against length bounds and the taken set."""
        if len(alias) < self.min_length:
            return AliasCheck(AliasOutcome.TOO_SHORT, alias)
        if len(alias) > self.max_length:
            return AliasCheck(AliasOutcome.TOO_LONG, alias)
        if alias in taken:
            return AliasCheck(AliasOutcome.TAKEN, alias)
        return AliasCheck(AliasOutcome.OK, alias)

    def resolve(self, seed: str, taken: Iterable[str], region: str = "") -> str:
        """
        Resolve a free alias starting from seed.

        Args:
            seed: Usually the migrated user's name.
            taken: Existing aliases and forbidden names in the destination
                region. Compared case-insensitively.
            region: Destination region, used in error reporting only.

        Returns:
            A valid alias not contained in taken.

        Raises:
            AliasUnavailableError: If no alias could be found.
        """
        taken_set = {alias.lower() for alias in taken if alias}
        candidate = seed.lower()

        for _ in range(MAX_RESOLUTION_STEPS):
            candidate = normalize_alias(candidate)
            result = self.check(candidate, taken_set)

            if result.outcome is AliasOutcome.OK:
                logger.debug("Resolved alias %s from seed %r", candidate, seed)
                return candidate
            if result.outcome is AliasOutcome.TOO_SHORT:
                candidate = f"{self.prefix}{candidate}"
            elif result.outcome is AliasOutcome.TOO_LONG:
                candidate = candidate[: min(TRUNCATE_LENGTH, self.max_length)]
            else:
                candidate = next_alias(candidate)

            logger.debug("Alias %s rejected (%s), trying %s", result.alias, result.outcome.value, candidate)

        raise AliasUnavailableError(candidate, region)


__all__ = [
    "AliasOutcome",
    "AliasCheck",
    "AliasResolver",
    "normalize_alias",
    "next_alias",
    "TRUNCATE_LENGTH",
]

#!/usr/bin/env python3
"""
Prefix and age filtering for registry entries.

Everything here is a pure function of the entry and the run's
``FilterCriteria``; no network or configuration access.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from registry_cleaner.models import FilterCriteria, RegistryEntry, ResourceKind, parse_timestamp

__all__ = [
    "FilterDecision",
    "evaluate",
    "evaluate_package_version",
    "matches_age",
    "matches_prefix",
    "parse_timestamp",
    "retain",
]


@dataclass(frozen=True)
class FilterDecision:
    retained: bool
    resource: ResourceKind
    reason: str
    matched_tag: Optional[str] = None


def matches_prefix(name: Optional[str], prefix: Optional[str]) -> bool:
    """Check a tag name against the prefix filter.

    Without a prefix everything matches, unnamed entries included. With a
    prefix, an unnamed entry never matches.
    """
    if not prefix:
        return True
    if name is None:
        return False
    return name.startswith(prefix)


def matches_age(timestamp: Optional[datetime], cutoff: Optional[datetime]) -> bool:
    """Check a timestamp against the age cutoff.

    Entries without a timestamp are never excluded by age.
    """
    if cutoff is None or timestamp is None:
        return True
    return timestamp < cutoff


def evaluate(entry: RegistryEntry, criteria: FilterCriteria) -> FilterDecision:
    """Decide whether a tag-style entry is eligible for deletion, with a reason for skips."""
    if not matches_prefix(entry.name, criteria.prefix):
        if entry.name is None:
            return FilterDecision(False, ResourceKind.UNTAGGED, "Skipping untagged entry because a prefix filter is set")
        return FilterDecision(False, ResourceKind.TAG, "Prefix mismatch")

    resource = ResourceKind.TAG if entry.name else ResourceKind.UNTAGGED
    if not matches_age(entry.timestamp, criteria.cutoff):
        return FilterDecision(False, resource, "Newer than cutoff")

    return FilterDecision(True, resource, "Matched filters")


def retain(entry: RegistryEntry, criteria: FilterCriteria) -> bool:
    return evaluate(entry, criteria).retained


def evaluate_package_version(entry: RegistryEntry, criteria: FilterCriteria) -> FilterDecision:
    """Decide whether a package version is eligible for deletion.

    The age rule is applied first. A version passing it is selected when it
    carries no tags at all, or when any of its tags matches the prefix rule.
    """
    resource = ResourceKind.PACKAGE_VERSION
    if not matches_age(entry.timestamp, criteria.cutoff):
        return FilterDecision(False, resource, "Skipping version (newer than cutoff)")

    if not entry.tags:
        return FilterDecision(True, resource, "Untagged package-version will be deleted")

    for tag in entry.tags:
        if matches_prefix(tag, criteria.prefix):
            return FilterDecision(True, resource, f"Matched tag '{tag}' -> will delete", matched_tag=tag)

    return FilterDecision(False, resource, "Keeping package-version (tags do not match)")

"""
Typed records shared by the providers, the filter policy and the orchestrator.

Registry payloads are decoded once, at the provider boundary, into
``RegistryEntry`` values. Everything downstream works with these records
instead of raw JSON.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Tuple

SUCCESS_STATUS_CODES = frozenset({200, 202, 204})

# Status reported when a request never produced an HTTP response
NETWORK_UNAVAILABLE = 0

_FRACTION = re.compile(r"\.(\d+)")


class ResourceKind(Enum):
    TAG = "tag"
    MANIFEST = "manifest"
    PACKAGE_VERSION = "package-version"
    UNTAGGED = "untagged"
    REPO = "repo"
    SCRIPT = "script"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


def classify_status(http_code: Optional[int]) -> OutcomeStatus:
    """Map an HTTP status code to an outcome status.

    200/202/204 are successes. Every other code, including 404 and the
    ``NETWORK_UNAVAILABLE`` sentinel, is a failure. ``None`` means no
    request was made and is reported as unknown.
    """
    if http_code is None:
        return OutcomeStatus.UNKNOWN
    if http_code in SUCCESS_STATUS_CODES:
        return OutcomeStatus.SUCCESS
    return OutcomeStatus.FAILURE


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a registry payload.

    Accepts a trailing ``Z`` or an explicit offset; naive values are taken
    as UTC. Fractional seconds of any length are cut or padded to
    microseconds. Returns None for missing or unparseable values.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _decode_timestamp(value: Any) -> Tuple[Optional[datetime], bool]:
    """Parse a payload timestamp; the flag is set when a value was present but unreadable."""
    parsed = parse_timestamp(value)
    return parsed, parsed is None and value not in (None, "")


@dataclass(frozen=True)
class RegistryCredential:
    provider: str
    repository: str
    username: Optional[str] = None
    secret: str = field(default="", repr=False)


@dataclass(frozen=True)
class AccessToken:
    value: str = field(repr=False)
    scope: str = ""

    def __bool__(self) -> bool:
        return bool(self.value)


@dataclass(frozen=True)
class RegistryEntry:
    """One listed image reference.

    Docker Hub tags fill ``name``/``digest``/``platform_digests``; GitHub
    package versions fill ``version_id``/``tags`` and use the version name
    (a digest) as ``digest``.
    """

    name: Optional[str] = None
    digest: Optional[str] = None
    platform_digests: Tuple[str, ...] = ()
    timestamp: Optional[datetime] = None
    version_id: Optional[int] = None
    tags: Tuple[str, ...] = ()
    # A timestamp was sent but could not be parsed
    timestamp_unparseable: bool = False

    @property
    def is_actionable(self) -> bool:
        return bool(self.name or self.digest or self.version_id is not None)

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.version_id is not None:
            return str(self.version_id)
        return self.digest or "<untagged>"

    @classmethod
    def from_dockerhub(cls, item: Any) -> "RegistryEntry":
        """Decode one element of a Docker Hub ``/tags`` ``results`` list."""
        if not isinstance(item, dict):
            return cls()

        platform_digests = []
        for image in item.get("images") or []:
            if isinstance(image, dict) and image.get("digest"):
                platform_digests.append(image["digest"])

        timestamp, unparseable = _decode_timestamp(item.get("last_updated"))
        return cls(
            name=item.get("name") or None,
            digest=item.get("digest") or None,
            platform_digests=tuple(platform_digests),
            timestamp=timestamp,
            timestamp_unparseable=unparseable,
        )

    @classmethod
    def from_ghcr_version(cls, item: Any) -> "RegistryEntry":
        """Decode one element of a GitHub Packages ``/versions`` list."""
        if not isinstance(item, dict):
            return cls()

        metadata = item.get("metadata")
        container = metadata.get("container") if isinstance(metadata, dict) else None
        raw_tags = container.get("tags") if isinstance(container, dict) else None
        tags = tuple(t for t in raw_tags or [] if isinstance(t, str) and t)

        version_id = item.get("id")
        if not isinstance(version_id, int) or isinstance(version_id, bool):
            version_id = None

        timestamp, unparseable = _decode_timestamp(item.get("created_at"))
        return cls(
            digest=item.get("name") or None,
            timestamp=timestamp,
            version_id=version_id,
            tags=tags,
            timestamp_unparseable=unparseable,
        )


@dataclass(frozen=True)
class FilterCriteria:
    prefix: Optional[str] = None
    cutoff: Optional[datetime] = None

    @classmethod
    def build(cls, prefix: Optional[str] = None, max_age_days: Optional[int] = None,
              now: Optional[datetime] = None) -> "FilterCriteria":
        """Build criteria for a run. An empty prefix means no prefix filter."""
        cutoff = None
        if max_age_days is not None:
            now = now or datetime.now(timezone.utc)
            cutoff = now - timedelta(days=max_age_days)
        return cls(prefix=prefix or None, cutoff=cutoff)


@dataclass(frozen=True)
class PageCursor:
    url: Optional[str]
    page: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.url is None


@dataclass(frozen=True)
class DeletionChannel:
    """A single deletion attempt planned for an entry.

    When ``resolve_from_tag`` is set, ``identifier`` is a tag name and the
    digest must be resolved before the delete is issued.
    """

    resource: ResourceKind
    identifier: str
    resolve_from_tag: bool = False


@dataclass(frozen=True)
class DeletionOutcome:
    resource: ResourceKind
    identifier: str
    status: OutcomeStatus
    http_code: Optional[int] = None
    message: str = ""
    # DeleteFailure classification for failed deletes
    failure: Optional[Exception] = field(default=None, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

"""
Provider capability shared by all registries.

The orchestrator is written once against ``Provider``; each registry
implements credential acquisition, listing, channel planning and the
per-channel delete call.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, List, Optional

from registry_cleaner.error_utils import create_digest_resolution_failure
from registry_cleaner.events import Action, EventRecorder
from registry_cleaner.filter_policy import FilterDecision, evaluate
from registry_cleaner.http_client import RegistryHttpClient
from registry_cleaner.models import (
    DeletionChannel,
    FilterCriteria,
    RegistryCredential,
    RegistryEntry,
    ResourceKind,
)


class Provider(ABC):
    """A registry the cleaner can list and delete from"""

    #: Short provider tag used in events (e.g. "dockerhub", "ghcr")
    name: str = ""
    #: Human-readable name used in start/finished messages
    display_name: str = ""

    def __init__(self, credential: RegistryCredential, client: RegistryHttpClient):
        self.credential = credential
        self.client = client
        self.recorder: Optional[EventRecorder] = None

    @property
    def repository(self) -> str:
        return self.credential.repository

    def attach(self, recorder: EventRecorder) -> None:
        self.recorder = recorder

    @abstractmethod
    def acquire_credentials(self) -> None:
        """Obtain the tokens needed for this run. Raises AuthError on failure."""

    def prepare(self) -> None:
        """Hook run once after credentials are acquired and before listing."""

    @abstractmethod
    def list_entries(self) -> Iterator[List[RegistryEntry]]:
        """Yield decoded entries, one batch per page. Raises PaginationError."""

    def decode_batch(self, batch: List[Any], decode: Callable[[Any], RegistryEntry]) -> List[RegistryEntry]:
        """Decode one page of listing items; items that fail to decode are reported and dropped."""
        entries = []
        for item in batch:
            try:
                entries.append(decode(item))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                if self.recorder is not None:
                    self.recorder.warn(Action.SKIP, ResourceKind.UNTAGGED,
                                       message=f"Skipping malformed listing item ({type(e).__name__}: {e})")
        return entries

    def evaluate(self, entry: RegistryEntry, criteria: FilterCriteria) -> FilterDecision:
        return evaluate(entry, criteria)

    @abstractmethod
    def deletion_channels(self, entry: RegistryEntry) -> List[DeletionChannel]:
        """Every deletion channel applicable to a retained entry."""

    def resolve_digest(self, tag: str) -> str:
        """Resolve a tag to its manifest digest. Raises DigestResolutionFailure."""
        raise create_digest_resolution_failure(tag)

    @abstractmethod
    def delete(self, channel: DeletionChannel) -> int:
        """Issue the delete for one channel and return its HTTP status (0 if unreachable)."""

    def on_delete_failure(self, channel: DeletionChannel, http_code: int) -> None:
        """Hook for provider specific diagnostics after a failed delete."""

    def describe(self, channel: DeletionChannel, decision: FilterDecision) -> str:
        """Human message for a delete attempt on a channel."""
        return f"Deleting {channel.resource.value} {channel.identifier}"

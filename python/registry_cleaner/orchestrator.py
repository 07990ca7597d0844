"""
Deletion orchestration for one provider pipeline.

Pages are fetched one after another. The entries of a page are filtered and
deleted on a bounded thread pool, and every entry's channels are attempted
independently: a failed tag delete does not stop the manifest deletes of the
same entry. The page is finished (all outcomes recorded) before the next one
is requested.

Pipeline-fatal errors (``AuthError``, ``PaginationError``) end the pipeline
and are returned in ``PipelineResult.error``; they are not re-raised.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from threading import Lock
from typing import Callable, List, Optional

from registry_cleaner.error_utils import (
    AuthError,
    CleanupError,
    DigestResolutionFailure,
    PaginationError,
    create_delete_failure,
)
from registry_cleaner.events import Action, EventRecorder, EventSink
from registry_cleaner.filter_policy import FilterDecision
from registry_cleaner.logging_utils import get_logger, log_exception
from registry_cleaner.models import (
    NETWORK_UNAVAILABLE,
    DeletionChannel,
    DeletionOutcome,
    FilterCriteria,
    OutcomeStatus,
    RegistryEntry,
    ResourceKind,
    classify_status,
)
from registry_cleaner.providers.base import Provider


class PipelineState(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PipelineResult:
    provider: str
    repository: str
    state: PipelineState = PipelineState.COMPLETED
    outcomes: List[DeletionOutcome] = field(default_factory=list)
    error: Optional[CleanupError] = None
    entries_seen: int = 0
    entries_skipped: int = 0

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.SUCCESS)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is not OutcomeStatus.SUCCESS)


class DeletionOrchestrator:
    """Runs the filter + delete pipeline for any ``Provider``"""

    def __init__(self, criteria: FilterCriteria, sink: EventSink, max_workers: int = 4):
        self.criteria = criteria
        self.sink = sink
        self.max_workers = max(1, max_workers)
        self.logger = get_logger(self.__class__.__name__)
        self._lock = Lock()

    def run(self, provider: Provider) -> PipelineResult:
        recorder = EventRecorder(self.sink, provider.name, provider.repository)
        provider.attach(recorder)
        result = PipelineResult(provider=provider.name, repository=provider.repository)

        recorder.info(Action.START, ResourceKind.REPO, provider.repository,
                      message=f"Starting {provider.display_name} cleanup")
        try:
            provider.acquire_credentials()
            provider.prepare()
            for batch in provider.list_entries():
                self.process_batch(provider, batch, recorder, result)
        except AuthError as e:
            return self._fail(result, recorder, Action.AUTH, e)
        except PaginationError as e:
            return self._fail(result, recorder, Action.PAGER, e)

        recorder.info(Action.FINISHED, ResourceKind.REPO, provider.repository,
                      message=f"{provider.display_name} cleanup finished")
        self.logger.info(
            f"{provider.display_name} ({provider.repository}): {result.entries_seen} entries, "
            f"{result.succeeded_count} deletions succeeded, {result.failed_count} failed"
        )
        return result

    def _fail(self, result: PipelineResult, recorder: EventRecorder, action: Action,
              error: CleanupError) -> PipelineResult:
        recorder.error(action, ResourceKind.REPO, result.repository,
                       http_code=error.details.get("status_code"), message=error.message)
        self.logger.error(str(error))
        result.state = PipelineState.FAILED
        result.error = error
        return result

    def process_batch(self, provider: Provider, batch: List[RegistryEntry], recorder: EventRecorder,
                      result: PipelineResult) -> None:
        """Process every entry of one page; returns once all of them are handled."""
        with self._lock:
            result.entries_seen += len(batch)

        if self.max_workers > 1 and len(batch) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(self.process_entry, provider, entry, recorder): entry for entry in batch}
                for fut in as_completed(futures):
                    self._collect(fut.result, futures[fut], recorder, result)
        else:
            for entry in batch:
                self._collect(partial(self.process_entry, provider, entry, recorder), entry, recorder, result)

    def _collect(self, work: Callable[[], List[DeletionOutcome]], entry: RegistryEntry, recorder: EventRecorder,
                 result: PipelineResult) -> None:
        try:
            outcomes = work()
        except Exception as exc:
            log_exception(self.logger, f"Unexpected error while processing {entry.label}", exc)
            recorder.error(Action.SKIP, ResourceKind.REPO, entry.label, message=f"Unexpected error: {exc}")
            outcomes = None

        with self._lock:
            if outcomes:
                result.outcomes.extend(outcomes)
            else:
                result.entries_skipped += 1

    def process_entry(self, provider: Provider, entry: RegistryEntry,
                      recorder: EventRecorder) -> List[DeletionOutcome]:
        """Filter one entry and attempt all of its deletion channels."""
        if not entry.is_actionable:
            recorder.warn(Action.SKIP, ResourceKind.UNTAGGED,
                          message="Entry has no name, digest or version id; nothing to delete")
            return []

        # An age filter is only safe to apply when the entry's age is known
        if entry.timestamp_unparseable and self.criteria.cutoff is not None:
            if entry.version_id is not None:
                resource = ResourceKind.PACKAGE_VERSION
            else:
                resource = ResourceKind.TAG if entry.name else ResourceKind.UNTAGGED
            recorder.warn(Action.SKIP, resource, entry.label, message="Skipping entry with unparseable timestamp")
            return []

        decision = provider.evaluate(entry, self.criteria)
        if not decision.retained:
            recorder.info(Action.SKIP, decision.resource, entry.label, message=decision.reason)
            return []

        channels = provider.deletion_channels(entry)
        if not channels:
            recorder.warn(Action.SKIP, decision.resource, entry.label, message="No applicable deletion channel")
            return []

        if decision.resource is ResourceKind.UNTAGGED:
            recorder.info(Action.DELETE_ATTEMPT, ResourceKind.UNTAGGED, entry.digest,
                          message="No tag name - will attempt manifest delete by digest")

        outcomes = []
        for channel in channels:
            outcome = self.attempt(provider, channel, decision, recorder)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def attempt(self, provider: Provider, channel: DeletionChannel, decision: FilterDecision,
                recorder: EventRecorder) -> Optional[DeletionOutcome]:
        """Attempt one channel. Returns None when the channel had to be skipped."""
        message = provider.describe(channel, decision)
        if channel.resolve_from_tag:
            try:
                digest = provider.resolve_digest(channel.identifier)
            except DigestResolutionFailure as e:
                recorder.warn(Action.SKIP, ResourceKind.MANIFEST, channel.identifier, message=e.message)
                return None
            channel = DeletionChannel(channel.resource, digest)
            message = "Found Docker-Content-Digest -> attempting DELETE"

        recorder.info(Action.DELETE_ATTEMPT, channel.resource, channel.identifier, message=message)
        try:
            http_code = provider.delete(channel)
        except Exception as exc:
            log_exception(self.logger, f"Delete of {channel.resource.value} {channel.identifier} raised", exc)
            http_code = NETWORK_UNAVAILABLE

        status = classify_status(http_code)
        if status is OutcomeStatus.SUCCESS:
            outcome = DeletionOutcome(channel.resource, channel.identifier, status, http_code,
                                      f"Deleted {channel.resource.value}")
            recorder.info(Action.DELETE_SUCCESS, channel.resource, channel.identifier, http_code, outcome.message)
            return outcome

        failure = create_delete_failure(channel.resource.value, channel.identifier, http_code)
        outcome = DeletionOutcome(channel.resource, channel.identifier, status, http_code, failure.message,
                                  failure=failure)
        recorder.warn(Action.DELETE_FAILED, channel.resource, channel.identifier, http_code, outcome.message)
        provider.on_delete_failure(channel, http_code)
        return outcome


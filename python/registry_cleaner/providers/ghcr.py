"""
GitHub Container Registry provider.

Works on package versions through the GitHub Packages REST API. Whether the
package belongs to an organization or a user is probed once per run; every
later listing and delete call uses the namespace picked then.
"""

from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

from registry_cleaner.error_utils import create_auth_error
from registry_cleaner.events import Action
from registry_cleaner.filter_policy import FilterDecision, evaluate_package_version
from registry_cleaner.http_client import RegistryHttpClient, status_of
from registry_cleaner.models import (
    AccessToken,
    DeletionChannel,
    FilterCriteria,
    RegistryCredential,
    RegistryEntry,
    ResourceKind,
)
from registry_cleaner.pagination import DEFAULT_PAGE_SIZE, iter_link_pages
from registry_cleaner.providers.base import Provider

DEFAULT_API = "https://api.github.com"
GHCR_HOST = "ghcr.io"
ORG_NAMESPACE = "orgs"
USER_NAMESPACE = "users"


def parse_ghcr_repository(repository: str) -> Tuple[str, str]:
    """Split ``ghcr.io/<owner>/<package>`` into owner and package.

    The host prefix is optional. Nested package names keep their slashes.
    """
    path = repository.strip().strip("/")
    if path.startswith(GHCR_HOST + "/"):
        path = path[len(GHCR_HOST) + 1:]
    owner, _, package = path.partition("/")
    if not owner or not package:
        raise ValueError(f"GHCR repository must look like ghcr.io/<owner>/<package>, got '{repository}'")
    return owner, package


class GhcrProvider(Provider):
    name = "ghcr"
    display_name = "GHCR"

    def __init__(
        self,
        credential: RegistryCredential,
        client: RegistryHttpClient,
        api: str = DEFAULT_API,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        super().__init__(credential, client)
        self.api = api.rstrip("/")
        self.page_size = page_size
        self.owner, self.package = parse_ghcr_repository(credential.repository)
        self.token: Optional[AccessToken] = None
        self._namespace: Optional[str] = None

    @property
    def namespace(self) -> Optional[str]:
        return self._namespace

    def versions_url(self, namespace: str) -> str:
        package = quote(self.package, safe="")
        return f"{self.api}/{namespace}/{self.owner}/packages/container/{package}/versions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token.value}",
            "Accept": "application/vnd.github+json",
        }

    def acquire_credentials(self) -> None:
        if not self.credential.secret:
            raise create_auth_error(self.name, self.repository, "GHCR token is empty")
        self.token = AccessToken(value=self.credential.secret, scope="packages")

    def prepare(self) -> None:
        self.detect_namespace()

    def detect_namespace(self) -> str:
        """Pick the org or user namespace for this run. Probes only once."""
        if self._namespace is not None:
            return self._namespace

        response = self.client.get(self.versions_url(ORG_NAMESPACE), headers=self._headers())
        if status_of(response) == 200:
            self._namespace = ORG_NAMESPACE
            self.recorder.info(Action.AUTH, ResourceKind.REPO, self.repository, message="Package under org detected")
        else:
            self._namespace = USER_NAMESPACE
            self.recorder.info(Action.AUTH, ResourceKind.REPO, self.repository, message="Package under user detected")
        return self._namespace

    def list_entries(self) -> Iterator[List[RegistryEntry]]:
        url = self.versions_url(self.detect_namespace())
        for batch in iter_link_pages(self.client, url, headers=self._headers(), recorder=self.recorder,
                                     per_page=self.page_size):
            yield self.decode_batch(batch, RegistryEntry.from_ghcr_version)

    def evaluate(self, entry: RegistryEntry, criteria: FilterCriteria) -> FilterDecision:
        return evaluate_package_version(entry, criteria)

    def deletion_channels(self, entry: RegistryEntry) -> List[DeletionChannel]:
        if entry.version_id is None:
            return []
        return [DeletionChannel(ResourceKind.PACKAGE_VERSION, str(entry.version_id))]

    def delete(self, channel: DeletionChannel) -> int:
        url = f"{self.versions_url(self.detect_namespace())}/{channel.identifier}"
        return status_of(self.client.delete(url, headers=self._headers()))

    def on_delete_failure(self, channel: DeletionChannel, http_code: int) -> None:
        if http_code in (401, 403):
            self.recorder.warn(
                Action.AUTH, ResourceKind.REPO, http_code=http_code,
                message="403/401 - check the token has delete:packages scope and belongs to the package "
                        "owner or an org admin",
            )

    def describe(self, channel: DeletionChannel, decision: FilterDecision) -> str:
        return decision.reason

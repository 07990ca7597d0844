"""
Docker Hub provider.

Tags are listed and deleted through the Hub catalog API with a JWT obtained
from ``/users/login/``. Manifests are deleted by digest through the registry
content API with a bearer token scoped to ``pull,delete`` on the repository.
"""

from typing import Dict, Iterator, List, Optional

from registry_cleaner.error_utils import AuthError, create_auth_error, create_digest_resolution_failure
from registry_cleaner.events import Action
from registry_cleaner.filter_policy import FilterDecision
from registry_cleaner.http_client import RegistryHttpClient, status_of
from registry_cleaner.models import (
    AccessToken,
    DeletionChannel,
    RegistryCredential,
    RegistryEntry,
    ResourceKind,
)
from registry_cleaner.pagination import DEFAULT_PAGE_SIZE, iter_cursor_pages
from registry_cleaner.providers.base import Provider

DEFAULT_HUB_API = "https://hub.docker.com/v2"
DEFAULT_REGISTRY_API = "https://registry-1.docker.io/v2"
DEFAULT_AUTH_URL = "https://auth.docker.io/token"
REGISTRY_SERVICE = "registry.docker.io"

MANIFEST_ACCEPT = ",".join([
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
])


def _extract_token(response) -> Optional[str]:
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    token = body.get("token")
    return token if isinstance(token, str) and token and token != "null" else None


class DockerHubProvider(Provider):
    name = "dockerhub"
    display_name = "Docker Hub"

    def __init__(
        self,
        credential: RegistryCredential,
        client: RegistryHttpClient,
        hub_api: str = DEFAULT_HUB_API,
        registry_api: str = DEFAULT_REGISTRY_API,
        auth_url: str = DEFAULT_AUTH_URL,
        page_size: int = DEFAULT_PAGE_SIZE,
        allow_missing_registry_token: bool = False,
    ):
        super().__init__(credential, client)
        self.hub_api = hub_api.rstrip("/")
        self.registry_api = registry_api.rstrip("/")
        self.auth_url = auth_url
        self.page_size = page_size
        self.allow_missing_registry_token = allow_missing_registry_token
        self.hub_token: Optional[AccessToken] = None
        self.registry_token: Optional[AccessToken] = None

    # Credentials

    def acquire_credentials(self) -> None:
        self.hub_token = self._request_hub_token()
        self.recorder.info(Action.AUTH, ResourceKind.REPO, message="Obtained Hub API token")

        try:
            self.registry_token = self._request_registry_token()
        except AuthError:
            if not self.allow_missing_registry_token:
                raise
            self.recorder.warn(Action.AUTH, ResourceKind.REPO, "registry",
                               message="Failed to obtain registry token (manifest DELETE may fail)")
            return
        self.recorder.info(Action.AUTH, ResourceKind.REPO, "registry", message="Obtained registry token")

    def _request_hub_token(self) -> AccessToken:
        url = f"{self.hub_api}/users/login/"
        response = self.client.post(
            url,
            json={"username": self.credential.username, "password": self.credential.secret},
        )
        token = _extract_token(response)
        if not token:
            raise create_auth_error(
                self.name, self.repository,
                f"Hub login returned HTTP {status_of(response)} without a token", endpoint=url,
            )
        return AccessToken(value=token, scope="hub")

    def _request_registry_token(self) -> AccessToken:
        scope = f"repository:{self.repository}:pull,delete"
        response = self.client.get(
            self.auth_url,
            params={"service": REGISTRY_SERVICE, "scope": scope},
            auth=(self.credential.username, self.credential.secret),
        )
        token = _extract_token(response)
        if not token:
            raise create_auth_error(
                self.name, self.repository,
                f"Registry token endpoint returned HTTP {status_of(response)} without a token",
                endpoint=self.auth_url,
            )
        return AccessToken(value=token, scope=scope)

    def _hub_headers(self) -> Dict[str, str]:
        return {"Authorization": f"JWT {self.hub_token.value}"} if self.hub_token else {}

    def _registry_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.registry_token.value}"} if self.registry_token else {}

    # Listing

    def list_entries(self) -> Iterator[List[RegistryEntry]]:
        url = f"{self.hub_api}/repositories/{self.repository}/tags?page_size={self.page_size}"
        for batch in iter_cursor_pages(self.client, url, headers=self._hub_headers(), recorder=self.recorder):
            yield self.decode_batch(batch, RegistryEntry.from_dockerhub)

    # Deletion

    def deletion_channels(self, entry: RegistryEntry) -> List[DeletionChannel]:
        channels = []
        if entry.name:
            channels.append(DeletionChannel(ResourceKind.TAG, entry.name))

        if entry.digest:
            channels.append(DeletionChannel(ResourceKind.MANIFEST, entry.digest))
        elif entry.name:
            channels.append(DeletionChannel(ResourceKind.MANIFEST, entry.name, resolve_from_tag=True))

        seen = {entry.digest}
        for digest in entry.platform_digests:
            if digest not in seen:
                seen.add(digest)
                channels.append(DeletionChannel(ResourceKind.MANIFEST, digest))
        return channels

    def resolve_digest(self, tag: str) -> str:
        headers = dict(self._registry_headers())
        headers["Accept"] = MANIFEST_ACCEPT
        response = self.client.head(f"{self.registry_api}/{self.repository}/manifests/{tag}", headers=headers)
        digest = None
        if response is not None:
            digest = (response.headers.get("Docker-Content-Digest") or "").strip()
        if not digest:
            raise create_digest_resolution_failure(tag, status_of(response))
        return digest

    def delete(self, channel: DeletionChannel) -> int:
        if channel.resource is ResourceKind.TAG:
            url = f"{self.hub_api}/repositories/{self.repository}/tags/{channel.identifier}/"
            response = self.client.delete(url, headers=self._hub_headers())
        else:
            url = f"{self.registry_api}/{self.repository}/manifests/{channel.identifier}"
            response = self.client.delete(url, headers=self._registry_headers())
        return status_of(response)

    def describe(self, channel: DeletionChannel, decision: FilterDecision) -> str:
        if channel.resource is ResourceKind.TAG:
            return "Deleting tag via Hub API"
        return "Attempting registry DELETE for manifest digest"

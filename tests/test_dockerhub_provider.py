"""Unit tests for registry_cleaner/providers/dockerhub.py"""

import pytest

from conftest import make_response
from registry_cleaner.error_utils import AuthError, DigestResolutionFailure
from registry_cleaner.models import DeletionChannel, RegistryCredential, RegistryEntry, ResourceKind
from registry_cleaner.providers.dockerhub import MANIFEST_ACCEPT, DockerHubProvider


@pytest.fixture
def credential():
    return RegistryCredential("dockerhub", "user/repo", "user", "password")


@pytest.fixture
def provider(credential, client, recorder):
    p = DockerHubProvider(credential, client, hub_api="https://hub/v2", registry_api="https://registry/v2",
                          auth_url="https://auth/token", page_size=10)
    p.attach(recorder)
    return p


def authenticated(provider):
    provider.client.post.return_value = make_response(body={"token": "hub-jwt"})
    provider.client.get.return_value = make_response(body={"token": "registry-bearer"})
    provider.acquire_credentials()
    provider.client.reset_mock()
    return provider


class TestAcquireCredentials:
    """Tests for the two-step Docker Hub token exchange"""

    def test_obtains_hub_and_registry_tokens(self, provider, client, sink):
        client.post.return_value = make_response(body={"token": "hub-jwt"})
        client.get.return_value = make_response(body={"token": "registry-bearer"})

        provider.acquire_credentials()

        client.post.assert_called_once_with(
            "https://hub/v2/users/login/", json={"username": "user", "password": "password"}
        )
        _, kwargs = client.get.call_args
        assert kwargs["params"] == {"service": "registry.docker.io", "scope": "repository:user/repo:pull,delete"}
        assert kwargs["auth"] == ("user", "password")
        assert provider.hub_token.value == "hub-jwt"
        assert provider.registry_token.value == "registry-bearer"
        assert [e.message for e in sink.find("auth")] == ["Obtained Hub API token", "Obtained registry token"]

    @pytest.mark.parametrize("response", [
        make_response(401, body={"detail": "Incorrect authentication credentials"}),
        make_response(200, body={"token": None}),
        make_response(200, body={"token": "null"}),
        None,
    ])
    def test_hub_login_failure_raises_auth_error(self, provider, client, response):
        client.post.return_value = response

        with pytest.raises(AuthError):
            provider.acquire_credentials()
        client.get.assert_not_called()

    def test_registry_token_failure_is_fatal_by_default(self, provider, client):
        client.post.return_value = make_response(body={"token": "hub-jwt"})
        client.get.return_value = make_response(401, body={})

        with pytest.raises(AuthError):
            provider.acquire_credentials()

    def test_registry_token_failure_tolerated_when_allowed(self, credential, client, recorder, sink):
        provider = DockerHubProvider(credential, client, allow_missing_registry_token=True)
        provider.attach(recorder)
        client.post.return_value = make_response(body={"token": "hub-jwt"})
        client.get.return_value = make_response(401, body={})

        provider.acquire_credentials()

        assert provider.registry_token is None
        warning = sink.find("auth")[-1]
        assert warning.level.value == "warn"
        assert warning.identifier == "registry"


class TestListEntries:
    """Tests for tag listing"""

    def test_decodes_each_page_into_entries(self, provider, client):
        authenticated(provider)
        client.get.side_effect = [
            make_response(body={"next": "https://hub/v2/next", "results": [{"name": "a"}, {"name": "b"}]}),
            make_response(body={"next": None, "results": [{"name": "c", "digest": "sha256:c"}]}),
        ]

        batches = list(provider.list_entries())

        assert [[e.name for e in batch] for batch in batches] == [["a", "b"], ["c"]]
        first_url = client.get.call_args_list[0].args[0]
        assert first_url == "https://hub/v2/repositories/user/repo/tags?page_size=10"
        assert client.get.call_args_list[0].kwargs["headers"] == {"Authorization": "JWT hub-jwt"}


class TestDeletionChannels:
    """Tests for channel planning"""

    def test_named_entry_with_digest_and_platforms(self, provider):
        """Scenario: tag + top digest + two platform digests -> four channels"""
        entry = RegistryEntry(name="myapp-1", digest="sha256:top",
                              platform_digests=("sha256:amd64", "sha256:arm64"))

        channels = provider.deletion_channels(entry)

        assert channels == [
            DeletionChannel(ResourceKind.TAG, "myapp-1"),
            DeletionChannel(ResourceKind.MANIFEST, "sha256:top"),
            DeletionChannel(ResourceKind.MANIFEST, "sha256:amd64"),
            DeletionChannel(ResourceKind.MANIFEST, "sha256:arm64"),
        ]

    def test_named_entry_without_digest_resolves_from_tag(self, provider):
        channels = provider.deletion_channels(RegistryEntry(name="myapp-1"))

        assert channels == [
            DeletionChannel(ResourceKind.TAG, "myapp-1"),
            DeletionChannel(ResourceKind.MANIFEST, "myapp-1", resolve_from_tag=True),
        ]

    def test_untagged_entry_only_has_manifest_channels(self, provider):
        entry = RegistryEntry(digest="sha256:top", platform_digests=("sha256:top", "sha256:amd64"))

        channels = provider.deletion_channels(entry)

        assert [c.identifier for c in channels] == ["sha256:top", "sha256:amd64"]
        assert all(c.resource is ResourceKind.MANIFEST for c in channels)


class TestResolveDigest:
    """Tests for tag -> digest resolution"""

    def test_reads_docker_content_digest_header(self, provider, client):
        authenticated(provider)
        client.head.return_value = make_response(headers={"Docker-Content-Digest": "sha256:resolved"})

        assert provider.resolve_digest("myapp-1") == "sha256:resolved"

        args, kwargs = client.head.call_args
        assert args[0] == "https://registry/v2/user/repo/manifests/myapp-1"
        assert kwargs["headers"]["Accept"] == MANIFEST_ACCEPT
        assert kwargs["headers"]["Authorization"] == "Bearer registry-bearer"

    @pytest.mark.parametrize("response", [make_response(404), make_response(200, headers={}), None])
    def test_missing_header_raises_resolution_failure(self, provider, client, response):
        client.head.return_value = response

        with pytest.raises(DigestResolutionFailure):
            provider.resolve_digest("myapp-1")


class TestDelete:
    """Tests for the per-channel delete calls"""

    def test_tag_delete_uses_hub_api(self, provider, client):
        authenticated(provider)
        client.delete.return_value = make_response(204)

        code = provider.delete(DeletionChannel(ResourceKind.TAG, "myapp-1"))

        assert code == 204
        client.delete.assert_called_once_with(
            "https://hub/v2/repositories/user/repo/tags/myapp-1/", headers={"Authorization": "JWT hub-jwt"}
        )

    def test_manifest_delete_uses_registry_api(self, provider, client):
        authenticated(provider)
        client.delete.return_value = make_response(202)

        code = provider.delete(DeletionChannel(ResourceKind.MANIFEST, "sha256:abc"))

        assert code == 202
        client.delete.assert_called_once_with(
            "https://registry/v2/user/repo/manifests/sha256:abc",
            headers={"Authorization": "Bearer registry-bearer"},
        )

    def test_unreachable_registry_reports_zero(self, provider, client):
        authenticated(provider)
        client.delete.return_value = None

        assert provider.delete(DeletionChannel(ResourceKind.MANIFEST, "sha256:abc")) == 0

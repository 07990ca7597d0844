"""Unit tests for registry_cleaner/providers/ghcr.py"""

import pytest

from conftest import make_response
from registry_cleaner.error_utils import AuthError
from registry_cleaner.models import DeletionChannel, RegistryCredential, RegistryEntry, ResourceKind
from registry_cleaner.providers.ghcr import GhcrProvider, parse_ghcr_repository


@pytest.fixture
def provider(client, recorder):
    credential = RegistryCredential("ghcr", "ghcr.io/acme/app", None, "gh-token")
    p = GhcrProvider(credential, client, api="https://api", page_size=2)
    p.attach(recorder)
    p.acquire_credentials()
    return p


class TestParseRepository:
    """Tests for parse_ghcr_repository"""

    @pytest.mark.parametrize("value,expected", [
        ("ghcr.io/acme/app", ("acme", "app")),
        ("acme/app", ("acme", "app")),
        ("ghcr.io/acme/tools/app", ("acme", "tools/app")),
    ])
    def test_valid_repositories(self, value, expected):
        assert parse_ghcr_repository(value) == expected

    @pytest.mark.parametrize("value", ["", "ghcr.io/acme", "acme"])
    def test_invalid_repositories(self, value):
        with pytest.raises(ValueError):
            parse_ghcr_repository(value)


class TestCredentials:
    """Tests for token handling"""

    def test_empty_token_raises(self, client):
        provider = GhcrProvider(RegistryCredential("ghcr", "acme/app", None, ""), client)

        with pytest.raises(AuthError):
            provider.acquire_credentials()

    def test_headers_carry_bearer_token(self, provider):
        headers = provider._headers()
        assert headers["Authorization"] == "Bearer gh-token"
        assert headers["Accept"] == "application/vnd.github+json"


class TestNamespaceDetection:
    """Tests for the one-time org/user probe"""

    def test_org_package(self, provider, client, sink):
        client.get.return_value = make_response(200, body=[])

        assert provider.detect_namespace() == "orgs"
        client.get.assert_called_once()
        assert client.get.call_args.args[0] == "https://api/orgs/acme/packages/container/app/versions"
        assert sink.find("auth")[-1].message == "Package under org detected"

    def test_falls_back_to_user(self, provider, client, sink):
        """Scenario: org probe returns 404 -> every later call uses the user endpoint"""
        client.get.side_effect = [
            make_response(404, body={"message": "Not Found"}),
            make_response(200, body=[{"id": 5, "metadata": {"container": {"tags": []}}}]),
        ]
        client.delete.return_value = make_response(204)

        provider.prepare()
        batches = list(provider.list_entries())
        provider.delete(DeletionChannel(ResourceKind.PACKAGE_VERSION, "5"))

        assert provider.namespace == "users"
        assert client.get.call_count == 2
        assert client.get.call_args_list[1].args[0] == "https://api/users/acme/packages/container/app/versions"
        assert client.delete.call_args.args[0] == "https://api/users/acme/packages/container/app/versions/5"
        assert batches[0][0].version_id == 5
        assert sink.find("auth")[-1].message == "Package under user detected"

    def test_probe_runs_once(self, provider, client):
        client.get.return_value = make_response(200, body=[])

        provider.detect_namespace()
        provider.detect_namespace()

        assert client.get.call_count == 1

    def test_nested_package_name_is_encoded(self, client):
        provider = GhcrProvider(RegistryCredential("ghcr", "ghcr.io/acme/tools/app", None, "t"), client,
                                api="https://api")
        assert provider.versions_url("orgs") == "https://api/orgs/acme/packages/container/tools%2Fapp/versions"


class TestChannelsAndDelete:
    """Tests for package-version deletion"""

    def test_single_package_version_channel(self, provider):
        channels = provider.deletion_channels(RegistryEntry(version_id=42, tags=("v1",)))
        assert channels == [DeletionChannel(ResourceKind.PACKAGE_VERSION, "42")]

    def test_no_channel_without_version_id(self, provider):
        assert provider.deletion_channels(RegistryEntry(digest="sha256:x")) == []

    def test_forbidden_delete_emits_scope_hint(self, provider, sink):
        provider.on_delete_failure(DeletionChannel(ResourceKind.PACKAGE_VERSION, "42"), 403)

        hint = sink.find("auth")[-1]
        assert hint.level.value == "warn"
        assert hint.http_code == 403
        assert "delete:packages" in hint.message

    def test_other_failures_emit_nothing(self, provider, sink):
        provider.on_delete_failure(DeletionChannel(ResourceKind.PACKAGE_VERSION, "42"), 404)
        assert sink.find("auth") == []

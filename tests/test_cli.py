"""Unit tests for registry_cleaner/cli.py"""

import os
from unittest.mock import MagicMock, patch

import pytest

from conftest import make_response
from registry_cleaner import cli
from registry_cleaner.config_manager import ConfigManager
from registry_cleaner.models import RegistryCredential
from registry_cleaner.orchestrator import DeletionOrchestrator, PipelineResult, PipelineState
from registry_cleaner.providers.base import Provider

ENV_KEYS = [
    "CONFIG_FILE", "DOCKERHUB_REPO", "DOCKERHUB_USERNAME", "DOCKERHUB_PASSWORD", "GHCR_REPO", "GHCR_USERNAME",
    "GHCR_TOKEN", "IMAGE_PREFIX", "MAX_AGE_DAYS", "MAX_WORKERS", "LOG_FMT", "LOG_LEVEL", "FAIL_FAST",
]


@pytest.fixture(autouse=True)
def clean_environment():
    saved = {key: os.environ.pop(key) for key in ENV_KEYS if key in os.environ}
    os.environ["CONFIG_FILE"] = "/nonexistent/config.yaml"
    yield
    for key in ENV_KEYS:
        os.environ.pop(key, None)
    os.environ.update(saved)


def config_with(**env):
    with patch.dict(os.environ, env):
        cm = ConfigManager()
        # Snapshot env-derived values before the patch is undone
        cm.apply_overrides(
            filters_prefix=cm.get_prefix(),
            filters_max_age_days=cm.get_max_age_days(),
            run_fail_fast=cm.is_fail_fast(),
            dockerhub_repository=os.environ.get("DOCKERHUB_REPO"),
            dockerhub_username=os.environ.get("DOCKERHUB_USERNAME"),
            dockerhub_password=os.environ.get("DOCKERHUB_PASSWORD"),
            ghcr_repository=os.environ.get("GHCR_REPO"),
            ghcr_token=os.environ.get("GHCR_TOKEN"),
        )
    return cm


class StubProvider(Provider):
    """Provider whose pipeline outcome is fixed up front"""

    def __init__(self, name, state):
        super().__init__(RegistryCredential(name, f"{name}/repo", "u", "s"), MagicMock())
        self.name = name
        self.display_name = name
        self.state = state

    def acquire_credentials(self):
        pass

    def list_entries(self):
        return iter(())

    def deletion_channels(self, entry):
        return []

    def delete(self, channel):
        return 204


def stub_orchestrator(states):
    orchestrator = MagicMock(spec=DeletionOrchestrator)
    orchestrator.run.side_effect = lambda p: PipelineResult(p.name, p.repository, state=states[p.name])
    return orchestrator


class TestParseArguments:
    """Tests for argument parsing"""

    def test_help_exits_zero_without_network(self, capsys):
        with patch("registry_cleaner.cli.RegistryHttpClient") as mock_client:
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["--help"])

        assert exc_info.value.code == 0
        mock_client.assert_not_called()
        output = capsys.readouterr().out
        assert "DOCKERHUB_REPO" in output
        assert "GHCR_TOKEN" in output

    def test_flags(self):
        args = cli.parse_arguments(["--prefix", "pr-", "--max-age-days", "14", "--log-format", "json",
                                    "--fail-fast", "--max-workers", "2"])

        assert args.prefix == "pr-"
        assert args.max_age_days == 14
        assert args.log_format == "json"
        assert args.fail_fast
        assert args.max_workers == 2

    def test_load_config_applies_flags(self):
        config = cli.load_config(cli.parse_arguments(["--prefix", "cli-", "--fail-fast"]))

        assert config.get_prefix() == "cli-"
        assert config.is_fail_fast()


class TestBuildProviders:
    """Tests for provider selection"""

    def test_missing_credentials_skip_provider_with_info_event(self, recorder, sink):
        config = config_with()

        providers, skipped = cli.build_providers(config, MagicMock(), recorder)

        assert providers == []
        assert [r.state for r in skipped] == [PipelineState.SKIPPED, PipelineState.SKIPPED]
        skips = sink.find("skip")
        assert [e.identifier for e in skips] == ["dockerhub", "ghcr"]
        assert all(e.level.value == "info" for e in skips)

    def test_configured_providers_are_built(self, recorder):
        config = config_with(DOCKERHUB_REPO="user/repo", DOCKERHUB_USERNAME="user", DOCKERHUB_PASSWORD="pw",
                             GHCR_REPO="ghcr.io/acme/app", GHCR_TOKEN="t")

        providers, skipped = cli.build_providers(config, MagicMock(), recorder)

        assert [p.name for p in providers] == ["dockerhub", "ghcr"]
        assert skipped == []


class TestRunPipelines:
    """Tests for pipeline scheduling and fatal error policy"""

    def test_failure_in_one_pipeline_does_not_stop_the_other(self, recorder):
        providers = [StubProvider("dockerhub", PipelineState.FAILED), StubProvider("ghcr", PipelineState.COMPLETED)]
        orchestrator = stub_orchestrator({"dockerhub": PipelineState.FAILED, "ghcr": PipelineState.COMPLETED})

        results = cli.run_pipelines(orchestrator, providers, recorder)

        assert [r.state for r in results] == [PipelineState.FAILED, PipelineState.COMPLETED]
        assert cli.exit_code_for(results) == 1

    def test_fail_fast_skips_remaining_pipelines(self, recorder, sink):
        providers = [StubProvider("dockerhub", PipelineState.FAILED), StubProvider("ghcr", PipelineState.COMPLETED)]
        orchestrator = stub_orchestrator({"dockerhub": PipelineState.FAILED, "ghcr": PipelineState.COMPLETED})

        results = cli.run_pipelines(orchestrator, providers, recorder, fail_fast=True)

        assert orchestrator.run.call_count == 1
        assert [r.state for r in results] == [PipelineState.FAILED, PipelineState.SKIPPED]
        assert sink.find("skip")[-1].identifier == "ghcr"

    def test_all_skipped_exits_zero(self):
        results = [PipelineResult("dockerhub", "", state=PipelineState.SKIPPED)]
        assert cli.exit_code_for(results) == 0


class TestRunCleanup:
    """Tests for a whole run"""

    def test_no_credentials_completes_without_network(self, sink):
        client = MagicMock()

        code = cli.run_cleanup(config_with(IMAGE_PREFIX="myapp-", MAX_AGE_DAYS="7"), sink, client=client)

        assert code == 0
        client.get.assert_not_called()
        client.close.assert_called_once()
        filters = sink.find("filter")
        assert [e.identifier for e in filters] == ["max_age_days=7", "prefix=myapp-"]
        assert sink.actions()[-1] == "finished"
        assert sink.events[-1].message == "Cleanup complete (0 cleaned, 2 skipped)"

    def test_fatal_auth_error_exits_one(self, sink):
        client = MagicMock()
        client.post.return_value = make_response(401, body={"detail": "bad credentials"})
        config = config_with(DOCKERHUB_REPO="user/repo", DOCKERHUB_USERNAME="user", DOCKERHUB_PASSWORD="bad")

        code = cli.run_cleanup(config, sink, client=client)

        assert code == 1
        assert sink.find("auth")[-1].level.value == "error"
        assert sink.events[-1].level.value == "error"

    def test_summary_table_lists_every_pipeline(self):
        results = [
            PipelineResult("dockerhub", "user/repo", state=PipelineState.COMPLETED, entries_seen=3),
            PipelineResult("ghcr", "", state=PipelineState.SKIPPED),
        ]

        table = cli.format_summary(results)

        assert "dockerhub" in table
        assert "skipped" in table
        assert "user/repo" in table


class TestMain:
    """Tests for main() exit codes"""

    def test_invalid_configuration_exits_two(self):
        with patch.dict(os.environ, {"MAX_WORKERS": "zero"}):
            with pytest.raises(SystemExit) as exc_info:
                cli.main([])
        assert exc_info.value.code == 2

    def test_successful_run_exits_zero(self):
        with patch("registry_cleaner.cli.run_cleanup", return_value=0) as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["--max-age-days", "3"])

        assert exc_info.value.code == 0
        config = mock_run.call_args.args[0]
        assert config.get_max_age_days() == 3

    def test_show_config_prints_masked_settings_and_exits(self, capsys):
        env = {"DOCKERHUB_REPO": "user/repo", "DOCKERHUB_USERNAME": "user", "DOCKERHUB_PASSWORD": "hunter2"}
        with patch.dict(os.environ, env), patch("registry_cleaner.cli.run_cleanup") as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["--show-config", "--prefix", "pr-"])

        assert exc_info.value.code == 0
        mock_run.assert_not_called()
        output = capsys.readouterr().out
        assert "user/repo" in output
        assert "Prefix: pr-" in output
        assert "hunter2" not in output

#!/usr/bin/env python3
"""
Registry image cleaner

Deletes old or unwanted container images from Docker Hub and the GitHub
Container Registry. Entries are selected by tag prefix and maximum age; every
action is reported as a structured event on stderr.

Configuration:
  Values are read from config.yaml (or the file named by CONFIG_FILE), then
  overridden by environment variables, then by command-line flags.

Usage examples:
  # Clean both registries using environment configuration
  registry-cleaner

  # Only delete tags starting with "pr-" that are older than 14 days
  registry-cleaner --prefix pr- --max-age-days 14

  # JSON event lines, stop at the first fatal error
  registry-cleaner --log-format json --fail-fast

  # Show the effective configuration without contacting any registry
  registry-cleaner --show-config
"""

import argparse
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from tabulate import tabulate

from registry_cleaner.config_manager import ConfigManager, ConfigValidationError
from registry_cleaner.events import Action, EventRecorder, EventSink, LoggingEventSink
from registry_cleaner.http_client import RegistryHttpClient
from registry_cleaner.logging_utils import get_logger, setup_logging
from registry_cleaner.models import FilterCriteria, ResourceKind
from registry_cleaner.orchestrator import DeletionOrchestrator, PipelineResult, PipelineState
from registry_cleaner.providers import DockerHubProvider, GhcrProvider, Provider

logger = get_logger(__name__)

SCRIPT_PROVIDER = "script"
GLOBAL_REPO = "<global>"

EXIT_OK = 0
EXIT_PIPELINE_FAILED = 1
EXIT_CONFIG_ERROR = 2

ENVIRONMENT_HELP = """
Environment variables:
  DOCKERHUB_REPO       Docker Hub repository (<user>/<repo>)
  DOCKERHUB_USERNAME   Docker Hub username
  DOCKERHUB_PASSWORD   Docker Hub password or access token
  GHCR_REPO            GHCR package (ghcr.io/<owner>/<package>)
  GHCR_USERNAME        GitHub username (optional)
  GHCR_TOKEN           GitHub token with read:packages and delete:packages
  IMAGE_PREFIX         Only delete tags starting with this prefix
  MAX_AGE_DAYS         Only delete entries older than this many days
  MAX_WORKERS          Parallel deletions per page (default: 4)
  LOG_FMT              Event format: text or json (default: text)
  LOG_LEVEL            Log level (default: INFO)
  FAIL_FAST            Stop the run at the first fatal error (default: false)
  CONFIG_FILE          Configuration file (default: config.yaml)

A registry whose credentials are not set is skipped.

Exit codes:
  0  every configured registry was cleaned (or skipped)
  1  a registry pipeline stopped on an authentication or listing error
  2  invalid configuration

Examples:
  # Clean both registries using environment configuration
  registry-cleaner

  # Only delete tags starting with "pr-" that are older than 14 days
  registry-cleaner --prefix pr- --max-age-days 14
"""


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        prog="registry-cleaner",
        description="Delete old or unwanted images from Docker Hub and GHCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=ENVIRONMENT_HELP,
    )

    parser.add_argument(
        '--config',
        help='Path to configuration YAML file (default: CONFIG_FILE or config.yaml)'
    )

    parser.add_argument(
        '--prefix',
        help='Only delete tags starting with this prefix (default: from config)'
    )

    parser.add_argument(
        '--max-age-days',
        type=int,
        help='Only delete entries older than this many days (default: from config)'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        help='Parallel deletions per page (default: from config)'
    )

    parser.add_argument(
        '--log-format',
        choices=list(LoggingEventSink.FORMATS),
        help='Event output format (default: from config)'
    )

    parser.add_argument(
        '--fail-fast',
        action='store_true',
        help='Stop the whole run at the first authentication or listing error'
    )

    parser.add_argument(
        '--show-config',
        action='store_true',
        help='Print the effective configuration (secrets masked) and exit'
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ConfigManager:
    """Build the configuration and apply command line overrides, then validate"""
    config = ConfigManager(config_file=args.config, validate=False)
    config.apply_overrides(
        filters_prefix=args.prefix,
        filters_max_age_days=args.max_age_days,
        analysis_max_workers=args.max_workers,
        logging_format=args.log_format,
        run_fail_fast=True if args.fail_fast else None,
    )
    config.validate_config()
    return config


def announce_filters(recorder: EventRecorder, criteria: FilterCriteria, max_age_days: Optional[int]) -> None:
    if criteria.cutoff is not None:
        recorder.info(Action.FILTER, ResourceKind.SCRIPT, f"max_age_days={max_age_days}",
                      message=f"Age filter enabled (cutoff {criteria.cutoff.strftime('%Y-%m-%dT%H:%M:%SZ')})")
    else:
        recorder.info(Action.FILTER, ResourceKind.SCRIPT, "max_age_days",
                      message="No age filter (MAX_AGE_DAYS not set)")

    if criteria.prefix:
        recorder.info(Action.FILTER, ResourceKind.SCRIPT, f"prefix={criteria.prefix}",
                      message="Tag prefix filter active")
    else:
        recorder.info(Action.FILTER, ResourceKind.SCRIPT, "prefix",
                      message="No prefix filter (IMAGE_PREFIX not set)")


def build_providers(config: ConfigManager, client: RegistryHttpClient,
                    recorder: EventRecorder) -> Tuple[List[Provider], List[PipelineResult]]:
    """Create a provider for every registry with complete credentials.

    Returns the providers to run and the results of the skipped ones.
    """
    providers: List[Provider] = []
    skipped: List[PipelineResult] = []
    page_size = config.get_page_size()

    dockerhub = config.get_dockerhub_credential()
    if dockerhub:
        providers.append(DockerHubProvider(
            dockerhub, client,
            hub_api=config.get_dockerhub_hub_api(),
            registry_api=config.get_dockerhub_registry_api(),
            auth_url=config.get_dockerhub_auth_url(),
            page_size=page_size,
            allow_missing_registry_token=config.get_dockerhub_allow_missing_registry_token(),
        ))
    else:
        recorder.info(Action.SKIP, ResourceKind.REPO, DockerHubProvider.name,
                      message="Docker Hub cleanup skipped (missing env)")
        skipped.append(PipelineResult(DockerHubProvider.name, "", state=PipelineState.SKIPPED))

    ghcr = config.get_ghcr_credential()
    if ghcr:
        providers.append(GhcrProvider(ghcr, client, api=config.get_ghcr_api(), page_size=page_size))
    else:
        recorder.info(Action.SKIP, ResourceKind.REPO, GhcrProvider.name,
                      message="GHCR cleanup skipped (missing env)")
        skipped.append(PipelineResult(GhcrProvider.name, "", state=PipelineState.SKIPPED))

    return providers, skipped


def run_pipelines(orchestrator: DeletionOrchestrator, providers: List[Provider], recorder: EventRecorder,
                  fail_fast: bool = False, parallel: bool = True) -> List[PipelineResult]:
    """Run every provider pipeline.

    Pipelines are independent: by default a fatal error in one does not stop
    the others. With ``fail_fast`` they run one after another and the
    remaining ones are skipped after the first fatal error.
    """
    if fail_fast or not parallel or len(providers) < 2:
        results = []
        for index, provider in enumerate(providers):
            result = orchestrator.run(provider)
            results.append(result)
            if fail_fast and result.failed:
                for remaining in providers[index + 1:]:
                    recorder.info(Action.SKIP, ResourceKind.REPO, remaining.name,
                                  message=f"{remaining.display_name} cleanup skipped after fatal error")
                    results.append(PipelineResult(remaining.name, remaining.repository,
                                                  state=PipelineState.SKIPPED))
                break
        return results

    with ThreadPoolExecutor(max_workers=len(providers)) as executor:
        futures = [executor.submit(orchestrator.run, provider) for provider in providers]
        return [fut.result() for fut in futures]


def format_summary(results: List[PipelineResult]) -> str:
    headers = ["Provider", "Repository", "State", "Entries", "Skipped", "Deleted", "Failed"]
    rows = []
    for result in results:
        rows.append([
            result.provider,
            result.repository or "-",
            result.state.value,
            result.entries_seen,
            result.entries_skipped,
            result.succeeded_count,
            result.failed_count,
        ])
    return tabulate(rows, headers=headers, tablefmt="grid")


def exit_code_for(results: List[PipelineResult]) -> int:
    return EXIT_PIPELINE_FAILED if any(r.failed for r in results) else EXIT_OK


def run_cleanup(config: ConfigManager, sink: EventSink, client: Optional[RegistryHttpClient] = None) -> int:
    """Run a complete cleanup and return the process exit code"""
    recorder = EventRecorder(sink, SCRIPT_PROVIDER, GLOBAL_REPO)
    max_age_days = config.get_max_age_days()
    criteria = FilterCriteria.build(prefix=config.get_prefix(), max_age_days=max_age_days)
    announce_filters(recorder, criteria, max_age_days)

    client = client or RegistryHttpClient.from_config(config)
    try:
        providers, skipped = build_providers(config, client, recorder)
        orchestrator = DeletionOrchestrator(criteria, sink, max_workers=config.get_max_workers())
        results = run_pipelines(
            orchestrator, providers, recorder,
            fail_fast=config.is_fail_fast(),
            parallel=config.is_parallel_providers(),
        )
    finally:
        client.close()

    results.extend(skipped)
    logger.info("Cleanup summary:\n" + format_summary(results))

    code = exit_code_for(results)
    if code == EXIT_OK:
        skipped_count = recorder.count(Action.SKIP)
        recorder.info(Action.FINISHED, ResourceKind.SCRIPT,
                      message=f"Cleanup complete ({len(results) - skipped_count} cleaned, {skipped_count} skipped)")
    else:
        failed = ", ".join(r.provider for r in results if r.failed)
        recorder.error(Action.FINISHED, ResourceKind.SCRIPT, message=f"Cleanup finished with fatal errors: {failed}")
    return code


def main(argv: Optional[List[str]] = None):
    """Main function"""
    args = parse_arguments(argv)

    try:
        config = load_config(args)
    except ConfigValidationError as e:
        setup_logging()
        logger.error(f"❌ {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    if args.show_config:
        config.print_config()
        sys.exit(EXIT_OK)

    setup_logging(config.get_log_level())
    sink = LoggingEventSink(config.get_log_format())

    try:
        code = run_cleanup(config, sink)
    except ConfigValidationError as e:
        logger.error(f"❌ {e}")
        code = EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        code = EXIT_PIPELINE_FAILED
    sys.exit(code)


if __name__ == "__main__":
    main()

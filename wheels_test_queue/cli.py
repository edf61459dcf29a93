"""CLI entry point for running the CFWheels test matrix."""

import argparse
import asyncio
import itertools
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiohttp

from wheels_test_queue.containers import DockerClient, DockerConfig
from wheels_test_queue.errors import (
    ExecutorNotFoundError,
    RegistryLookupError,
    SpecNotFoundError,
)
from wheels_test_queue.executors.base import TestExecutor
from wheels_test_queue.executors.loading import (
    available_executors,
    load_executor_manifest,
)
from wheels_test_queue.models.result import TestRun, TestStatus
from wheels_test_queue.orchestrator import TestQueue
from wheels_test_queue.preflight import run_preflight
from wheels_test_queue.registry import Registry, default_registry, load_registry

STATUS_SYMBOLS = {
    TestStatus.PASSED: "✓",
    TestStatus.FAILED: "✗",
    TestStatus.ERROR: "!",
    TestStatus.SKIPPED: "-",
    TestStatus.UNKNOWN: "?",
}

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_NOT_RUN = 2


def log_results_summary(log: logging.Logger, runs: Sequence[TestRun]) -> None:
    """Log a formatted summary of test runs with their failing tests."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for run in runs:
        symbol = STATUS_SYMBOLS.get(run.status, "?")
        log.info(
            "%s %s / %s / %s: %s (%d passed, %d failed, %d errors, %d skipped "
            "of %d, %.2fs)",
            symbol,
            run.engine.id,
            run.database.id,
            run.bundle.id,
            run.status,
            run.summary.passed,
            run.summary.failed,
            run.summary.errors,
            run.summary.skipped,
            run.summary.total,
            run.duration or 0.0,
        )
        for result in run.results:
            if result.error is not None:
                log.info(
                    "  %s %s: %s",
                    STATUS_SYMBOLS.get(result.status, "?"),
                    result.name or result.id,
                    result.error.message,
                )


def parse_ids(value: str) -> Sequence[str]:
    """Parse comma-separated ids."""
    return tuple(part.strip() for part in value.split(",") if part.strip())


def format_output(runs: Sequence[TestRun]) -> dict[str, Any]:
    """Format runs for JSON output."""
    formatted: list[dict[str, Any]] = []
    for run in runs:
        formatted.append(
            {
                "id": run.id,
                "engine": run.engine.id,
                "database": run.database.id,
                "bundle": run.bundle.id,
                "spec": run.spec.id if run.spec else None,
                "status": run.status.value,
                "duration": run.duration,
                "summary": {
                    "total": run.summary.total,
                    "passed": run.summary.passed,
                    "failed": run.summary.failed,
                    "errors": run.summary.errors,
                    "skipped": run.summary.skipped,
                },
                "failures": [
                    {
                        "id": result.id,
                        "name": result.name,
                        "status": result.status.value,
                        "message": result.error.message,
                    }
                    for result in run.results
                    if result.error is not None
                ],
            }
        )

    return {
        "total": len(formatted),
        "passed": sum(1 for r in formatted if r["status"] == TestStatus.PASSED),
        "failed": sum(1 for r in formatted if r["status"] == TestStatus.FAILED),
        "errors": sum(1 for r in formatted if r["status"] == TestStatus.ERROR),
        "skipped": sum(1 for r in formatted if r["status"] == TestStatus.SKIPPED),
        "runs": formatted,
    }


def enqueue_matrix(
    queue: TestQueue,
    engine_ids: Sequence[str],
    database_ids: Sequence[str],
    bundle_ids: Sequence[str],
    spec_id: str | None = None,
) -> Sequence[str]:
    """Enqueue every engine x database x bundle combination, in that order."""
    return [
        queue.enqueue(engine_id, database_id, bundle_id, spec_id)
        for engine_id, database_id, bundle_id in itertools.product(
            engine_ids, database_ids, bundle_ids
        )
    ]


async def check_environment(
    log: logging.Logger,
    registry: Registry,
    executor: TestExecutor,
    engine_ids: Sequence[str],
    database_ids: Sequence[str],
    docker_url: str,
) -> bool:
    """Run pre-flight for every engine/database pair; True if all pass.

    The engine HTTP check targets the address ``executor`` sends tests to.
    """
    ok = True
    async with (
        DockerClient.from_config(DockerConfig(url=docker_url)) as docker,
        aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session,
    ):
        for engine_id, database_id in itertools.product(engine_ids, database_ids):
            engine = registry.get_engine(engine_id)
            preflight = await run_preflight(
                engine,
                registry.get_database(database_id),
                docker,
                session,
                engine_url=executor.engine_url(engine),
            )
            if not preflight.success:
                ok = False
                for step in preflight.steps:
                    if step.error:
                        log.error(
                            "Pre-flight %s/%s %s: %s",
                            engine_id,
                            database_id,
                            step.id,
                            step.error,
                        )
    return ok


async def run(
    executor_key: str,
    executor_config_json: str,
    engine_ids: Sequence[str],
    database_ids: Sequence[str],
    bundle_ids: Sequence[str],
    spec_id: str | None = None,
    registry_path: Path | None = None,
    fail_fast: bool = False,
    preflight: bool = False,
    docker_url: str = DockerConfig().url,
) -> int:
    """Run the test matrix and return exit code."""
    log = logging.getLogger("wheels_test_queue")

    log.info("Loading executor: %s", executor_key)
    try:
        manifest = load_executor_manifest(executor_key)
        config = manifest.load_config(executor_config_json)
        if registry_path is not None:
            registry = await load_registry(registry_path)
        else:
            registry = default_registry()
    except (ExecutorNotFoundError, FileNotFoundError, ValueError) as e:
        log.error("%s", e)
        return EXIT_NOT_RUN

    if not (engine_ids and database_ids and bundle_ids):
        log.error("At least one engine, database and bundle is required")
        return EXIT_NOT_RUN

    async with manifest.executor_factory(config) as executor:
        if preflight:
            try:
                ready = await check_environment(
                    log, registry, executor, engine_ids, database_ids, docker_url
                )
            except RegistryLookupError as e:
                log.error("Invalid combination: %s", e)
                return EXIT_NOT_RUN
            if not ready:
                log.error("Pre-flight checks failed, not running tests")
                return EXIT_NOT_RUN

        queue = TestQueue(executor=executor, registry=registry, fail_fast=fail_fast)
        try:
            queued = enqueue_matrix(
                queue, engine_ids, database_ids, bundle_ids, spec_id
            )
        except RegistryLookupError as e:
            log.error("Invalid combination: %s", e)
            if isinstance(e, SpecNotFoundError) and registry_path is None:
                log.error("The built-in registry has no specs; pass --registry")
            return EXIT_NOT_RUN

        log.info("Running %d combination(s)...", len(queued))
        runs = await queue.start()

    log_results_summary(log, runs)
    print(json.dumps(format_output(runs), indent=2))

    if len(runs) < len(queued):
        return EXIT_FAILURES
    if any(run.status is not TestStatus.PASSED for run in runs):
        return EXIT_FAILURES
    return EXIT_OK


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run CFWheels test bundles across CFML engines and databases"
    )
    parser.add_argument(
        "--executor",
        default="testbox",
        help=f"Executor key ({', '.join(available_executors())})",
    )
    parser.add_argument(
        "--executor-config",
        default="{}",
        help="JSON configuration for the executor",
    )
    parser.add_argument(
        "--engines",
        required=True,
        help="Comma-separated engine ids (e.g., lucee5,adobe2023)",
    )
    parser.add_argument(
        "--databases",
        required=True,
        help="Comma-separated database ids (e.g., mysql,h2)",
    )
    parser.add_argument(
        "--bundles",
        default="all",
        help="Comma-separated bundle ids (default: all)",
    )
    parser.add_argument(
        "--spec",
        default=None,
        help="Spec id within the bundles (requires specs defined via --registry)",
    )
    parser.add_argument(
        "--registry",
        type=Path,
        default=None,
        help="YAML file overriding the built-in engines, databases and bundles",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Skip remaining combinations after the first failing run",
    )
    parser.add_argument(
        "--preflight",
        action="store_true",
        help="Check containers and engines before running",
    )
    parser.add_argument(
        "--docker-url",
        default=DockerConfig().url,
        help="Docker API URL used by --preflight",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            executor_key=args.executor,
            executor_config_json=args.executor_config,
            engine_ids=parse_ids(args.engines),
            database_ids=parse_ids(args.databases),
            bundle_ids=parse_ids(args.bundles),
            spec_id=args.spec,
            registry_path=args.registry,
            fail_fast=args.fail_fast,
            preflight=args.preflight,
            docker_url=args.docker_url,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()

"""
Shared command-line plumbing for the job entry points.

Every job follows the same shape:

    build_parser()                  -> argparse parser (common flags included)
    build_config(args, settings)    -> JobConfig (flag, then environment, then default)
    run(config, ...)                -> async, does the work
    main(argv=None)                 -> exit code

Exit codes:
    0  success
    1  records failed (aggregating jobs) or a delivery/runtime error
    2  configuration error
    3  missing input or unparseable input
"""

import argparse
import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence
import logging

import httpx
import pydantic

from core.config import JobConfig, Settings, get_settings
from core.exceptions import (
    ConfigurationError,
    DXImportError,
    SourceError,
)
from core.logging import setup_logging
from ingestion.audit_log import FailureLogger
from ingestion.base import Sink, WorkUnit
from ingestion.checkpoint import ResumeTracker
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.http_loader import HTTPSink
from ingestion.runner import ImportRunner
from ingestion.sender import RateLimiter, ResilientSender, Sleep
from ingestion.transformers.fields import parse_bool
from ingestion.transformers.normalizer import RecordTransformer
from schemas.results import RunSummary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INPUT = 3


def add_base_arguments(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Flags every job accepts"""
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Validate and log payload previews without sending. Falls back to DRY_RUN.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level. Falls back to LOG_LEVEL.")
    return parser


def add_common_arguments(
    parser: argparse.ArgumentParser,
    default_rps: float,
    default_failures: Optional[str] = None,
    token: bool = True,
    failures: bool = True,
) -> argparse.ArgumentParser:
    """Flags of jobs that call an API: throughput, timeout and optionally DX token and failure log"""
    if token:
        parser.add_argument("--token", help="API token. Falls back to DX_TOKEN.")
    parser.add_argument(
        "--rps",
        type=float,
        help=f"Requests per second. Falls back to RPS (default {default_rps:g}).",
    )
    parser.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout in seconds.")
    if failures:
        parser.add_argument(
            "--failures",
            default=None,
            help="Failure log CSV. Falls back to FAILURE_LOG_FILE"
            + (f" (default {default_failures})." if default_failures else "."),
        )
    return add_base_arguments(parser)


def first_set(*values: Any) -> Any:
    """First value that is neither None nor a blank string"""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value.strip() if isinstance(value, str) else value
    return None


def resolve_flag(flag: Optional[bool], env_value: Optional[str], default: bool = False) -> bool:
    """Boolean option: explicit flag, then environment, then default"""
    if flag is not None:
        return bool(flag)
    parsed = parse_bool(env_value)
    return default if parsed is None else parsed


def split_csv_list(value: Optional[str]) -> list:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def require(value: Any, name: str, hint: str) -> Any:
    """Raise ConfigurationError when a required setting is missing"""
    if first_set(value) is None:
        raise ConfigurationError(f"Missing {name}. {hint}", context={"setting": name})
    return value


def require_input(path: Optional[Path], name: str) -> Path:
    if path is None:
        raise ConfigurationError(f"Missing {name}", context={"setting": name})
    return path


def base_config(args: argparse.Namespace, settings: Settings) -> dict:
    """JobConfig keyword arguments derived from the base flags"""
    return {"dry_run": resolve_flag(args.dry_run, settings.DRY_RUN)}


def common_config(args: argparse.Namespace, settings: Settings, default_rps: float, default_failures: Optional[str] = None) -> dict:
    """JobConfig keyword arguments derived from the common flags"""
    options = base_config(args, settings)
    options.update(
        requests_per_second=first_set(args.rps, settings.RPS, default_rps),
        timeout_seconds=args.timeout,
    )
    if hasattr(args, "token"):
        options["token"] = first_set(args.token, settings.DX_TOKEN)
    if hasattr(args, "failures"):
        failures = first_set(args.failures, settings.FAILURE_LOG_FILE, default_failures)
        options["failure_log_path"] = Path(failures) if failures else None
    return options


def build_limiter(config: JobConfig, sleep: Sleep = asyncio.sleep) -> RateLimiter:
    return RateLimiter(config.requests_per_second, sleep=sleep)


def build_sender(
    config: JobConfig,
    sink: Optional[Sink] = None,
    limiter: Optional[RateLimiter] = None,
    sleep: Sleep = asyncio.sleep,
    dry_run: Optional[bool] = None,
) -> ResilientSender:
    """ResilientSender configured from a JobConfig"""
    return ResilientSender(
        sink=sink,
        limiter=limiter if limiter is not None else build_limiter(config, sleep),
        max_attempts=config.max_attempts,
        dry_run=config.dry_run if dry_run is None else dry_run,
        sleep=sleep,
    )


def build_http_client(config: JobConfig, proxy: Optional[str] = None) -> httpx.AsyncClient:
    if proxy:
        return httpx.AsyncClient(timeout=config.timeout_seconds, proxy=proxy)
    return httpx.AsyncClient(timeout=config.timeout_seconds)


def exit_code_for(error: DXImportError) -> int:
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIG
    if isinstance(error, SourceError):
        return EXIT_INPUT
    return EXIT_FAILED


def execute_job(
    parser: argparse.ArgumentParser,
    build_config: Callable[[argparse.Namespace, Settings], JobConfig],
    run: Callable[[JobConfig], Awaitable[Any]],
    argv: Optional[Sequence[str]] = None,
    fail_on_record_errors: bool = False,
) -> int:
    """
    Parse flags, configure logging, run the job and map the outcome to an exit code.

    With ``fail_on_record_errors`` a run that failed or rejected any record
    exits non-zero.
    """
    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(first_set(args.log_level, settings.LOG_LEVEL))

    try:
        try:
            config = build_config(args, settings)
        except pydantic.ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", original_exception=e) from e
        result = asyncio.run(run(config))
    except DXImportError as e:
        logger.error(str(e))
        return exit_code_for(e)

    if isinstance(result, RunSummary) and fail_on_record_errors:
        if result.records_failed or result.records_rejected:
            logger.error(
                f"Done with errors: successes={result.records_sent} "
                f"failures={result.records_failed + result.records_rejected}"
            )
            return EXIT_FAILED
    return EXIT_OK


async def run_csv_import(
    config: JobConfig,
    transformer: RecordTransformer,
    units: Optional[Iterable[WorkUnit]] = None,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    prompt: Callable[[str], str] = input,
    sink_for: Optional[Callable[[WorkUnit], Optional[Sink]]] = None,
) -> RunSummary:
    """
    Send every record of ``config.input_path`` (file or chunk directory) to
    ``config.target_url``, one JSON POST per record.
    """
    extractor = CSVExtractor(require_input(config.input_path, "input path"), delimiter=config.delimiter)
    if units is None:
        extractor.files()
        units = extractor.iter_units()

    owns_client = client is None
    client = client or build_http_client(config)
    sink = HTTPSink(config.target_url, token=config.token, client=client, timeout=config.timeout_seconds) if config.target_url else None

    runner = ImportRunner(
        job_kind=config.job_kind,
        sender=build_sender(config, sink, sleep=sleep),
        failure_log=FailureLogger(config.failure_log_path) if config.failure_log_path else None,
        tracker=ResumeTracker(config.state_file, config.job_kind, config.auto_resume, prompt) if config.state_file else None,
        sink_for=sink_for,
    )

    if config.dry_run:
        logger.info("DRY_RUN enabled: nothing will be sent")

    try:
        return await runner.run(units, transformer)
    finally:
        if owns_client:
            await client.aclose()

"""
Set the services of pull requests in DX (deployments.setPullServices).

Rows are grouped by ``repository#pull_number``; services from every row of
a group are merged and de-duplicated. Groups are split into contiguous
partitions processed concurrently, all sharing one throughput ceiling.
Successful calls are written to a success CSV, failures to the failure log.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx
import logging

from core.config import JobConfig, Settings
from ingestion.audit_log import AuditLog, FailureLogger
from ingestion.base import WorkUnit
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.http_loader import HTTPSink
from ingestion.runner import ImportRunner
from ingestion.sender import Sleep
from ingestion.transformers.fields import unique
from ingestion.transformers.normalizer import PullServicesTransformer
from jobs.common import (
    add_common_arguments,
    build_http_client,
    build_sender,
    common_config,
    execute_job,
    first_set,
    require,
    require_input,
)
from models.base import JobKind
from schemas.payloads import PullServicesPayload
from schemas.results import Rejection, RunSummary, SendResult

logger = logging.getLogger(__name__)

DEFAULT_RPS = 10.0
DEFAULT_CONCURRENCY = 6
DEFAULT_FAILURES = "./set_pull_services_errors.csv"
DEFAULT_SUCCESS_LOG = "./set_pull_services_success.csv"
ENDPOINT_PATH = "/api/deployments.setPullServices"

SUCCESS_COLUMNS = ["repository", "pull_number", "services_pretty", "services_json", "count", "status"]


def success_row(payload: PullServicesPayload, result: SendResult) -> Dict[str, object]:
    return {
        "repository": payload.repository,
        "pull_number": payload.pull_number,
        "services_pretty": "|".join(payload.services),
        "services_json": json.dumps(payload.services),
        "count": len(payload.services),
        "status": "DRY" if result.dry_run else result.status_code,
    }


def group_rows(
    records: List[Dict[str, str]],
    source: str,
    transformer: PullServicesTransformer,
) -> Tuple[List[WorkUnit], List[Tuple[WorkUnit, Rejection]]]:
    """
    Merge rows sharing ``repository#pull_number``.

    Returns:
        (one unit per group in first-seen order, rejected rows)
    """
    groups: Dict[str, PullServicesPayload] = {}
    services: Dict[str, List[str]] = {}
    rejected = []

    for index, record in enumerate(records):
        result = transformer.transform(record)
        if isinstance(result, Rejection):
            unit = WorkUnit(source=source, position={"file": source, "row": index}, record=record)
            rejected.append((unit, result))
            continue
        key = result.group_key
        if key not in groups:
            groups[key] = result
            services[key] = []
        services[key].extend(result.services)

    units = [
        WorkUnit(
            source=source,
            position={"group": key},
            record={
                "repository": payload.repository,
                "pull_number": payload.pull_number,
                "services": unique(services[key]),
            },
        )
        for key, payload in groups.items()
    ]
    return units, rejected


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--csv", help="Input CSV path. Falls back to INPUT_FILE.")
    parser.add_argument("--base-url", help="DX base URL. Falls back to DX_BASE_URL.")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Parallel workers (default {DEFAULT_CONCURRENCY}).",
    )
    parser.add_argument("--success-log", default=DEFAULT_SUCCESS_LOG, help="Success CSV path.")
    parser.add_argument("--delimiter", default=None, help="CSV delimiter. Falls back to CSV_DELIMITER.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    base_url = require(
        first_set(args.base_url, settings.DX_BASE_URL),
        "DX base URL",
        "Provide --base-url or set DX_BASE_URL.",
    )
    if not options["dry_run"]:
        require(options["token"], "DX token", "Provide --token or set DX_TOKEN, or use --dry-run.")
    csv_path = require(first_set(args.csv, settings.INPUT_FILE), "input CSV", "Provide --csv or set INPUT_FILE.")

    return JobConfig(
        job_kind=JobKind.SET_PULL_SERVICES.value,
        target_url=f"{base_url.rstrip('/')}{ENDPOINT_PATH}",
        input_path=Path(csv_path),
        delimiter=first_set(args.delimiter, settings.CSV_DELIMITER, ","),
        concurrency=args.concurrency,
        success_log_path=Path(args.success_log) if args.success_log else None,
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
) -> RunSummary:
    path = require_input(config.input_path, "input CSV")
    extractor = CSVExtractor(path, delimiter=config.delimiter)
    records = extractor.read_file(extractor.files()[0])

    transformer = PullServicesTransformer()
    units, rejected = group_rows(records, path.name, transformer)
    logger.info(f"Prepared {len(units)} PR groups from {len(records)} rows ({len(rejected)} rows rejected)")

    owns_client = client is None
    client = client or build_http_client(config)
    sink = HTTPSink(config.target_url, token=config.token, client=client, timeout=config.timeout_seconds)

    runner = ImportRunner(
        job_kind=config.job_kind,
        sender=build_sender(config, sink, sleep=sleep),
        failure_log=FailureLogger(config.failure_log_path) if config.failure_log_path else None,
        success_log=AuditLog(config.success_log_path, SUCCESS_COLUMNS) if config.success_log_path else None,
        success_row=success_row,
    )

    rejections = runner.new_summary()
    for unit, rejection in rejected:
        runner.reject(unit, rejection, rejections)

    try:
        summary = await runner.run_sharded(units, transformer, config.concurrency)
    finally:
        if owns_client:
            await client.aclose()

    return summary.merge(rejections)


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

"""
Import Tabnine Enterprise usage metrics into ``custom.tabnine_daily_usages``.

One GET of the usage endpoint, then inserts in batches of --chunk-size rows
with ON CONFLICT DO NOTHING, so re-running the import never duplicates
rows. With --dry-run the inserts are only logged.
"""

import argparse
import asyncio
from typing import List, Optional, Sequence

import httpx
import logging

from core.config import JobConfig, Settings
from core.database import build_engine
from ingestion.audit_log import FailureLogger
from ingestion.base import WorkUnit
from ingestion.extractors.api_extractor import TabnineExtractor
from ingestion.loaders.postgres_loader import PostgresSink
from ingestion.runner import ImportRunner
from ingestion.sender import Sleep
from ingestion.transformers.normalizer import TabnineUsageTransformer
from jobs.common import (
    add_common_arguments,
    build_http_client,
    build_limiter,
    build_sender,
    common_config,
    execute_job,
    first_set,
    require,
)
from models.base import JobKind
from models.tabnine_usage import tabnine_daily_usages
from schemas.payloads import TabnineUsageRow
from schemas.results import Rejection, RunSummary

logger = logging.getLogger(__name__)

DEFAULT_RPS = 10.0
DEFAULT_CHUNK_SIZE = 100
DEFAULT_FAILURES = "./tabnine_usage_failures.csv"
SOURCE = "tabnine"


def chunked(rows: List[TabnineUsageRow], size: int) -> List[List[TabnineUsageRow]]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db", help="Postgres connection string. Falls back to DX_DB_CONNECTION.")
    parser.add_argument("--api-key", help="Tabnine Enterprise API key. Falls back to TABNINE_API_KEY.")
    parser.add_argument(
        "--chunk-size",
        type=int,
        help=f"Rows per INSERT. Falls back to CHUNK_SIZE (default {DEFAULT_CHUNK_SIZE}).",
    )
    parser.add_argument("--usage-url", default=None, help="Override the usage endpoint.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES, token=False)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    database_url = require(first_set(args.db, settings.DX_DB_CONNECTION), "database connection", "Set --db or DX_DB_CONNECTION.")
    api_key = require(first_set(args.api_key, settings.TABNINE_API_KEY), "Tabnine API key", "Set --api-key or TABNINE_API_KEY.")

    return JobConfig(
        job_kind=JobKind.TABNINE_USAGE.value,
        database_url=database_url,
        chunk_size=first_set(args.chunk_size, settings.CHUNK_SIZE, DEFAULT_CHUNK_SIZE),
        options={"api_key": api_key, "usage_url": args.usage_url},
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    sink: Optional[PostgresSink] = None,
) -> RunSummary:
    """
    Fetch usage and insert it.

    ``sink`` replaces the Postgres sink built from ``config.database_url``.
    """
    owns_client = client is None
    client = client or build_http_client(config)
    sink = sink or PostgresSink(build_engine(config.database_url, "dx-tabnine-usage"), tabnine_daily_usages)

    limiter = build_limiter(config, sleep)
    sender = build_sender(config, sink, limiter=limiter, sleep=sleep)
    runner = ImportRunner(
        job_kind=config.job_kind,
        sender=sender,
        failure_log=FailureLogger(config.failure_log_path) if config.failure_log_path else None,
    )
    summary = runner.new_summary()
    transformer = TabnineUsageTransformer()

    if config.dry_run:
        logger.info("DRY_RUN enabled: will not write to the database")

    try:
        extractor = TabnineExtractor(
            build_sender(config, limiter=limiter, sleep=sleep, dry_run=False),
            client,
            config.options["api_key"],
            url=config.options.get("usage_url"),
            timeout=max(config.timeout_seconds, 60.0),
        )
        records = await extractor.fetch_usage()

        rows: List[TabnineUsageRow] = []
        for index, record in enumerate(records):
            summary.records_read += 1
            result = transformer.transform(record)
            if isinstance(result, Rejection):
                runner.reject(WorkUnit(source=SOURCE, position={"row": index}, record=record), result, summary)
                continue
            rows.append(result)

        for batch in chunked(rows, config.chunk_size):
            send_result = await sender.send([row.to_row() for row in batch])
            if send_result.ok:
                summary.records_sent += len(batch)
            else:
                summary.records_failed += len(batch)
                logger.error(f"Insert of {len(batch)} rows failed after {send_result.attempts} attempts: {send_result.error}")
                for row in batch:
                    unit = WorkUnit(source=SOURCE, position={"email": row.email, "date": str(row.date)})
                    runner.log_failure(unit, row.email, send_result.error or "Insert failed", row.to_row())
    finally:
        await sink.aclose()
        if owns_client:
            await client.aclose()

    logger.info("Tabnine usage data import complete.")
    runner.log_summary(summary)
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv, fail_on_record_errors=True)


if __name__ == "__main__":
    raise SystemExit(main())

"""
Import incidents from one CSV into DX (incidents.sync).

Timestamps are normalized to ISO-8601 with an explicit UTC designator and
``services`` may be a JSON array or a comma/semicolon/pipe list.
"""

import argparse
import asyncio
from pathlib import Path
from typing import Callable, Optional, Sequence

import httpx

from core.config import JobConfig, Settings
from ingestion.sender import Sleep
from ingestion.transformers.normalizer import IncidentTransformer
from jobs.common import (
    add_common_arguments,
    common_config,
    execute_job,
    first_set,
    require,
    run_csv_import,
)
from models.base import JobKind
from schemas.results import RunSummary

DEFAULT_INPUT = "1 - Critical.csv"
DEFAULT_API_URL = "https://yourinstance.getdx.net/api/incidents.sync"
DEFAULT_RPS = 10.0
DEFAULT_FAILURES = "./incident_import_failures.csv"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--input", help=f"Incidents CSV. Falls back to INPUT_FILE (default '{DEFAULT_INPUT}').")
    parser.add_argument("--api-url", help="incidents.sync endpoint. Falls back to API_URL.")
    parser.add_argument("--delimiter", default=None, help="CSV delimiter. Falls back to CSV_DELIMITER.")
    parser.add_argument("--state-file", default=None, help="Resume marker path (resume disabled when omitted).")
    parser.add_argument("--resume", action="store_true", help="Resume from the marker without asking.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    if not options["dry_run"]:
        require(options["token"], "DX token", "Provide --token or set DX_TOKEN, or use --dry-run.")

    return JobConfig(
        job_kind=JobKind.INCIDENTS.value,
        target_url=first_set(args.api_url, settings.API_URL, DEFAULT_API_URL),
        input_path=Path(first_set(args.input, settings.INPUT_FILE, DEFAULT_INPUT)),
        delimiter=first_set(args.delimiter, settings.CSV_DELIMITER, ","),
        state_file=Path(args.state_file) if args.state_file else None,
        auto_resume=args.resume,
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    prompt: Callable[[str], str] = input,
) -> RunSummary:
    return await run_csv_import(
        config,
        IncidentTransformer(),
        client=client,
        sleep=sleep,
        prompt=prompt,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

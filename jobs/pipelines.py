"""
Import pipeline runs from a directory of numbered CSV chunk files.

Each row becomes one ``pipelineRuns.sync`` call. Files are processed in
numeric order (chunk_1, chunk_2, ..., chunk_10) and a resume marker tracks
the last completed (file, row) so an interrupted backfill can continue.
"""

import argparse
import asyncio
from pathlib import Path
from typing import Callable, Optional, Sequence

import httpx

from core.config import JobConfig, Settings
from ingestion.sender import Sleep
from ingestion.transformers.normalizer import PipelineRunTransformer
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

DEFAULT_DIRECTORY = "./Backfill"
DEFAULT_API_URL = "https://yourinstance.getdx.net/api/pipelineRuns.sync"
DEFAULT_RPS = 7.0
DEFAULT_FAILURES = "./pipeline_import_failures.csv"
DEFAULT_STATE_FILE = "./pipeline_import_state.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dir", help=f"Chunk directory. Falls back to DIRECTORY (default {DEFAULT_DIRECTORY}).")
    parser.add_argument("--api-url", help="pipelineRuns.sync endpoint. Falls back to API_URL.")
    parser.add_argument("--delimiter", default=None, help="CSV delimiter. Falls back to CSV_DELIMITER.")
    parser.add_argument("--resume", action="store_true", help="Resume from the marker without asking.")
    parser.add_argument("--state-file", default=DEFAULT_STATE_FILE, help="Resume marker path.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    if not options["dry_run"]:
        require(options["token"], "DX token", "Provide --token or set DX_TOKEN, or use --dry-run.")

    return JobConfig(
        job_kind=JobKind.PIPELINES.value,
        target_url=first_set(args.api_url, settings.API_URL, DEFAULT_API_URL),
        input_path=Path(first_set(args.dir, settings.DIRECTORY, DEFAULT_DIRECTORY)),
        delimiter=first_set(args.delimiter, settings.CSV_DELIMITER, ","),
        state_file=Path(args.state_file),
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
        PipelineRunTransformer(),
        client=client,
        sleep=sleep,
        prompt=prompt,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

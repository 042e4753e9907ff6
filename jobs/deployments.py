"""
Create deployments in DX from one CSV (deployments.create).

Rows may carry their own ``token`` and ``base_url`` columns, which override
the command-line/environment values for that row. The job exits non-zero
when any row failed or was rejected.
"""

import argparse
import asyncio
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

import httpx

from core.config import JobConfig, Settings
from core.exceptions import ConfigurationError, SourceError
from ingestion.base import WorkUnit
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.http_loader import HTTPSink
from ingestion.sender import Sleep
from ingestion.transformers.fields import get_field, normalize_headers
from ingestion.transformers.normalizer import DeploymentTransformer
from jobs.common import (
    add_common_arguments,
    build_http_client,
    common_config,
    execute_job,
    first_set,
    require_input,
    run_csv_import,
)
from models.base import JobKind
from schemas.results import RunSummary

DEFAULT_RPS = 7.0
DEFAULT_FAILURES = "./deployment_import_failures.csv"
ENDPOINT_PATH = "/api/deployments.create"


def deployments_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{ENDPOINT_PATH}"


class RowSinks:
    """
    Sink per (base URL, token), resolved from each row's overrides.

    Sinks share one HTTP client; the sender's limiter is shared by all of them.
    """

    def __init__(self, config: JobConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client
        self._sinks: Dict[Tuple[str, str], HTTPSink] = {}

    def __call__(self, unit: WorkUnit) -> HTTPSink:
        record = normalize_headers(unit.record)
        base_url = first_set(get_field(record, "base_url"), self.config.target_url)
        token = first_set(get_field(record, "token"), self.config.token)
        if not base_url:
            raise ConfigurationError("Base URL not provided", context={"row": unit.position.get("row")})
        if not token and not self.config.dry_run:
            raise ConfigurationError("Token not provided", context={"row": unit.position.get("row")})

        key = (base_url, token or "")
        if key not in self._sinks:
            self._sinks[key] = HTTPSink(
                deployments_url(base_url),
                token=token,
                client=self.client,
                timeout=self.config.timeout_seconds,
            )
        return self._sinks[key]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--csv", required=True, help="Deployments CSV path.")
    parser.add_argument("--base-url", help="DX base URL. Falls back to DX_BASE_URL.")
    parser.add_argument("--delimiter", default=None, help="CSV delimiter. Falls back to CSV_DELIMITER.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    return JobConfig(
        job_kind=JobKind.DEPLOYMENTS.value,
        target_url=first_set(args.base_url, settings.DX_BASE_URL),
        input_path=Path(args.csv),
        delimiter=first_set(args.delimiter, settings.CSV_DELIMITER, ","),
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    prompt: Callable[[str], str] = input,
) -> RunSummary:
    path = require_input(config.input_path, "--csv")
    extractor = CSVExtractor(path, delimiter=config.delimiter)
    records = extractor.read_file(extractor.files()[0])
    if not records:
        raise SourceError("CSV is empty", context={"file_path": str(path)})

    units = [
        WorkUnit(source=path.name, position={"file": path.name, "row": index}, record=record)
        for index, record in enumerate(records)
    ]

    owns_client = client is None
    client = client or build_http_client(config)
    try:
        return await run_csv_import(
            config.model_copy(update={"target_url": None}),
            DeploymentTransformer(),
            units=units,
            client=client,
            sleep=sleep,
            prompt=prompt,
            sink_for=RowSinks(config, client),
        )
    finally:
        if owns_client:
            await client.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv, fail_on_record_errors=True)


if __name__ == "__main__":
    raise SystemExit(main())

"""
Split a CSV into one file per distinct value of a column.

Rows with a blank value go to ``undefined.csv``. Existing output files are
left alone unless --overwrite is given. Headers keep their original case;
the split column is matched case-insensitively.
"""

import argparse
import re
from pathlib import Path
from typing import Dict, Optional, Sequence

import logging
import pandas as pd

from core.config import JobConfig, Settings
from ingestion.extractors.csv_extractor import CSVExtractor
from jobs.common import (
    add_base_arguments,
    base_config,
    execute_job,
    first_set,
    require_input,
    resolve_flag,
)
from models.base import JobKind

logger = logging.getLogger(__name__)

DEFAULT_INPUT = "./Paddle.csv"
DEFAULT_OUTPUT_DIR = "./split_envs"
DEFAULT_COLUMN = "environment"
UNDEFINED = "undefined"

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^\w\-]")


def sanitize(name: Optional[str]) -> str:
    """Filesystem-safe name: whitespace to ``_``, other punctuation dropped"""
    text = str(name or "").strip()
    if not text:
        return UNDEFINED
    return _UNSAFE.sub("", _WHITESPACE.sub("_", text)) or UNDEFINED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--csv", "--input", dest="csv", help=f"Input CSV. Falls back to INPUT_FILE (default {DEFAULT_INPUT}).")
    parser.add_argument("--out", help=f"Output directory. Falls back to OUTPUT_DIR (default {DEFAULT_OUTPUT_DIR}).")
    parser.add_argument("--column", help=f"Column to split on. Falls back to SPLIT_COLUMN (default {DEFAULT_COLUMN}).")
    parser.add_argument("--delimiter", help="CSV delimiter. Falls back to CSV_DELIMITER.")
    parser.add_argument(
        "--safe-names",
        dest="safe_names",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Sanitize output file names. Falls back to SAFE_NAMES (default on).",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Replace existing output files. Falls back to OVERWRITE.",
    )
    return add_base_arguments(parser)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = base_config(args, settings)
    return JobConfig(
        job_kind=JobKind.SPLIT_CSV.value,
        input_path=Path(first_set(args.csv, settings.INPUT_FILE, DEFAULT_INPUT)),
        delimiter=first_set(args.delimiter, settings.CSV_DELIMITER, ","),
        options={
            "output_dir": first_set(args.out, settings.OUTPUT_DIR, DEFAULT_OUTPUT_DIR),
            "column": first_set(args.column, settings.SPLIT_COLUMN, DEFAULT_COLUMN),
            "safe_names": resolve_flag(args.safe_names, settings.SAFE_NAMES, default=True),
            "overwrite": resolve_flag(args.overwrite, settings.OVERWRITE, default=False),
        },
        **options,
    )


async def run(config: JobConfig) -> Dict[str, int]:
    """
    Split the input file.

    Returns:
        Output file name -> number of rows written (or that would be written)
    """
    opts = config.options
    path = require_input(config.input_path, "input CSV")
    extractor = CSVExtractor(path, delimiter=config.delimiter)
    df = extractor.read_frame(extractor.files()[0], normalize_headers=False)

    column = str(opts["column"]).strip().lower()
    matches = [c for c in df.columns if str(c).strip().lower() == column]
    if matches:
        keys = df[matches[0]].astype(str).str.strip().replace("", UNDEFINED)
    else:
        logger.warning(f"Column '{opts['column']}' not found; every row goes to {UNDEFINED}.csv")
        keys = pd.Series(UNDEFINED, index=df.index)

    if opts["safe_names"]:
        keys = keys.map(sanitize)

    output_dir = Path(opts["output_dir"])
    if not config.dry_run:
        output_dir.mkdir(parents=True, exist_ok=True)

    written: Dict[str, int] = {}
    for key, rows in df.groupby(keys, sort=False):
        output_path = output_dir / f"{key or UNDEFINED}.csv"
        if config.dry_run:
            logger.info(f"[DRY_RUN] Would write {len(rows)} rows to {output_path}")
            written[output_path.name] = len(rows)
            continue
        if output_path.exists() and not opts["overwrite"]:
            logger.info(f"Skip (exists): {output_path} (use --overwrite to replace)")
            continue
        rows.to_csv(output_path, index=False, sep=config.delimiter)
        written[output_path.name] = len(rows)
        logger.info(f"Wrote {len(rows)} rows to {output_path}")

    logger.info("DRY_RUN complete. No files written." if config.dry_run else "All values processed.")
    return written


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

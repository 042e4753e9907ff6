"""
Export DX users with their team, tags and AI tool usage to a CSV file.

The query result is streamed from Postgres in batches of 1000 rows and
appended to the output file batch by batch. With --dry-run rows are only
counted.
"""

import argparse
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import logging
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import JobConfig, Settings
from core.database import build_engine
from core.exceptions import SourceError
from ingestion.audit_log import AuditLog
from jobs.common import (
    add_base_arguments,
    base_config,
    execute_job,
    first_set,
    require,
)
from models.base import JobKind

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "./user_tags.csv"
BATCH_SIZE = 1000

QUERY = """
SELECT
    du.name AS user_name,
    du.email,
    dt.name AS team_name,
    dt.flattened_parent AS team_hierarchy,
    to_char(du.start_date::timestamp AT TIME ZONE 'UTC', 'YYYY-MM-DD') AS start_date,
    string_agg(DISTINCT CONCAT(dtg.name, ': ', dt_tags.name), ', ') AS tags,
    string_agg(DISTINCT ai_tools.tool, ', ') AS ai_tools_used,
    COUNT(DISTINCT ai_tools.tool) AS total_ai_tools_count
FROM dx_users du
LEFT JOIN dx_teams dt ON du.team_id = dt.id
LEFT JOIN dx_user_tags dut ON du.id = dut.user_id
LEFT JOIN dx_tags dt_tags ON dut.tag_id = dt_tags.id
LEFT JOIN dx_tag_groups dtg ON dt_tags.tag_group_id = dtg.id
LEFT JOIN bespoke_ai_tool_daily_metrics ai_tools ON du.email = ai_tools.email AND ai_tools.is_active = true
WHERE du.team_id IS NOT NULL
  AND du.deleted_at IS NULL
GROUP BY
    du.id,
    du.name,
    du.email,
    dt.name,
    dt.flattened_parent,
    du.start_date
ORDER BY du.name
"""

CSV_COLUMNS = [
    "user_name",
    "email",
    "team_name",
    "team_hierarchy",
    "start_date",
    "tags",
    "ai_tools_used",
    "total_ai_tools_count",
]

Batches = AsyncIterator[List[Dict[str, Any]]]


async def stream_batches(database_url: str, batch_size: int = BATCH_SIZE) -> Batches:
    """Server-side cursor over QUERY, ``batch_size`` rows at a time"""
    engine = build_engine(database_url, "dx-export-user-tags")
    try:
        async with engine.connect() as conn:
            result = await conn.stream(text(QUERY), execution_options={"yield_per": batch_size})
            async for partition in result.mappings().partitions(batch_size):
                yield [dict(row) for row in partition]
    except (SQLAlchemyError, OSError) as e:
        raise SourceError(
            "User tags query failed",
            context={"database": "DATABASE_URL"},
            original_exception=e,
        )
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--output", default=DEFAULT_OUTPUT, help=f"Output CSV path (default {DEFAULT_OUTPUT}).")
    parser.add_argument("--database-url", help="Postgres connection string. Falls back to DATABASE_URL.")
    return add_base_arguments(parser)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = base_config(args, settings)
    database_url = require(
        first_set(args.database_url, settings.DATABASE_URL),
        "DATABASE_URL",
        "Set it in the environment or use --database-url.",
    )
    return JobConfig(
        job_kind=JobKind.USER_TAGS.value,
        database_url=database_url,
        options={"output": str(Path(args.output).resolve())},
        **options,
    )


async def run(config: JobConfig, batches: Optional[Batches] = None) -> int:
    """
    Run the export.

    Returns:
        Number of rows exported (or counted, in dry-run)
    """
    output = Path(config.options["output"])
    batches = batches if batches is not None else stream_batches(config.database_url)

    logger.info("Starting user tags export...")
    if config.dry_run:
        logger.info("DRY RUN: would export user tags data")
        logger.info(f"Output columns: {', '.join(CSV_COLUMNS)}")
        logger.info(f"Output file: {output}")
        sink = None
    else:
        logger.info(f"Output file: {output}")
        sink = AuditLog(output, CSV_COLUMNS)
        sink.reset()

    row_count = 0
    verb = "Would process" if config.dry_run else "Processed"
    async for batch in batches:
        if sink is not None:
            sink.append_many(batch)
        before = row_count
        row_count += len(batch)
        if row_count // BATCH_SIZE > before // BATCH_SIZE:
            logger.info(f"{verb} {row_count} rows...")

    if config.dry_run:
        logger.info(f"DRY RUN: would export {row_count} rows to {output}")
    else:
        logger.info(f"Export complete. Wrote {row_count} rows to {output}")
    return row_count


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

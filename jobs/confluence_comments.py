"""
Export footer and inline comments of Confluence pages to two CSV files.

Page ids come from ``confluence_pages.source_id`` in the DX database. Each
page gets one footer-comments and one inline-comments request; 429 and 5xx
responses are retried, 401 and other client errors skip that page.
"""

import argparse
import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx
import logging
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import JobConfig, Settings
from core.database import build_engine
from core.exceptions import SourceError
from ingestion.audit_log import AuditLog
from ingestion.extractors.api_extractor import ConfluenceExtractor
from ingestion.sender import Sleep
from jobs.common import (
    add_common_arguments,
    build_http_client,
    build_sender,
    common_config,
    execute_job,
    first_set,
    require,
)
from models.base import JobKind

logger = logging.getLogger(__name__)

DEFAULT_RPS = 2.0
DEFAULT_FOOTER_OUTPUT = "./confluence_footer_comments.csv"
DEFAULT_INLINE_OUTPUT = "./confluence_inline_comments.csv"
PROXY_HOST = "proxy.getdx.net:80"
PAGE_QUERY = "SELECT source_id FROM confluence_pages"

COMMENT_COLUMNS = [
    "page_id",
    "comment_source_id",
    "parent_comment_source_id",
    "author_source_id",
    "body",
    "created_at",
    "updated_at",
    "status",
]


def proxy_url(user: Optional[str], password: Optional[str]) -> Optional[str]:
    if not user or not password:
        return None
    return f"http://{user}:{password}@{PROXY_HOST}"


def comment_row(page_id: str, comment: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one API comment; body prefers plain text over storage format"""
    body = comment.get("body") or {}
    author = comment.get("createdBy") or {}
    text_body = (body.get("plain") or {}).get("value") or (body.get("storage") or {}).get("value") or ""
    return {
        "page_id": page_id,
        "comment_source_id": comment.get("id"),
        "parent_comment_source_id": comment.get("parentId") or "",
        "author_source_id": author.get("accountId") or "",
        "body": text_body,
        "created_at": comment.get("createdAt") or "",
        "updated_at": comment.get("updatedAt") or "",
        "status": comment.get("status") or "current",
    }


async def fetch_page_ids(database_url: str) -> List[str]:
    engine = build_engine(database_url, "dx-confluence-comments")
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text(PAGE_QUERY))
            return [str(row[0]) for row in result]
    except (SQLAlchemyError, OSError) as e:
        raise SourceError("Could not read Confluence page ids", original_exception=e)
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--db", help="DX Postgres connection string. Falls back to DX_DB_CONNECTION, then DATABASE_URL.")
    parser.add_argument("--base-url", help="Confluence base URL. Falls back to CONFLUENCE_BASE_URL.")
    parser.add_argument("--email", help="Atlassian account email. Falls back to CONFLUENCE_EMAIL.")
    parser.add_argument("--api-token", help="Atlassian API token. Falls back to CONFLUENCE_API_TOKEN.")
    parser.add_argument("--footer-output", default=DEFAULT_FOOTER_OUTPUT)
    parser.add_argument("--inline-output", default=DEFAULT_INLINE_OUTPUT)
    return add_common_arguments(parser, DEFAULT_RPS, token=False, failures=False)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS)
    database_url = require(
        first_set(args.db, settings.DX_DB_CONNECTION, settings.DATABASE_URL),
        "database connection",
        "Set --db, DX_DB_CONNECTION or DATABASE_URL.",
    )
    base_url = require(first_set(args.base_url, settings.CONFLUENCE_BASE_URL), "Confluence base URL", "Set --base-url or CONFLUENCE_BASE_URL.")
    email = require(first_set(args.email, settings.CONFLUENCE_EMAIL), "Confluence email", "Set --email or CONFLUENCE_EMAIL.")
    api_token = require(first_set(args.api_token, settings.CONFLUENCE_API_TOKEN), "Confluence API token", "Set --api-token or CONFLUENCE_API_TOKEN.")

    return JobConfig(
        job_kind=JobKind.CONFLUENCE_COMMENTS.value,
        database_url=database_url,
        options={
            "base_url": base_url,
            "email": email,
            "api_token": api_token,
            "proxy": proxy_url(settings.DX_PROXY_USER, settings.DX_PROXY_PASS),
            "footer_output": args.footer_output,
            "inline_output": args.inline_output,
        },
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    page_ids: Optional[List[str]] = None,
) -> Dict[str, int]:
    """
    Returns:
        Comment kind -> number of comments written
    """
    opts = config.options
    if page_ids is None:
        page_ids = await fetch_page_ids(config.database_url)
    logger.info(f"Fetched {len(page_ids)} page ids from DX.")

    outputs = {
        "footer-comments": AuditLog(opts["footer_output"], COMMENT_COLUMNS),
        "inline-comments": AuditLog(opts["inline_output"], COMMENT_COLUMNS),
    }
    for output in outputs.values():
        output.reset()

    owns_client = client is None
    client = client or build_http_client(config, proxy=opts.get("proxy"))
    extractor = ConfluenceExtractor(
        build_sender(config, sleep=sleep, dry_run=False),
        client,
        opts["base_url"],
        opts["email"],
        opts["api_token"],
        timeout=config.timeout_seconds,
    )

    try:
        for page_id in page_ids:
            for kind, output in outputs.items():
                comments = await extractor.page_comments(page_id, kind)
                output.append_many(comment_row(page_id, c) for c in comments)
    finally:
        if owns_client:
            await client.aclose()

    counts = {kind: output.rows_written for kind, output in outputs.items()}
    for kind, output in outputs.items():
        logger.info(f"{counts[kind]} {kind} written to {output.path}.")
    return counts


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

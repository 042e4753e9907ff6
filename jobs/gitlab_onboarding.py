"""
DX onboarding backfill for GitLab.

For each (group, username) pair, fetch the user's earliest merged merge
requests and forward ``{source, id, username, merged_at, url, title}`` for
each one to the DX webhook. A resume marker is written after every
completed pair. When every pair succeeded a ``{"finished": true}`` ping is
sent and the marker is removed; on error the marker is kept.
"""

import argparse
import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import httpx
import logging

from core.config import JobConfig, Settings
from core.exceptions import DXImportError, PermanentSinkError
from ingestion.base import WorkUnit
from ingestion.audit_log import FailureLogger
from ingestion.checkpoint import ResumeTracker, describe_position
from ingestion.extractors.api_extractor import GitLabExtractor
from ingestion.loaders.http_loader import HTTPSink, reject_ok_false
from ingestion.runner import ImportRunner
from ingestion.sender import Sleep
from ingestion.transformers.normalizer import GitLabMergeTransformer
from jobs.common import (
    add_common_arguments,
    build_http_client,
    build_limiter,
    build_sender,
    common_config,
    execute_job,
    first_set,
    require,
    split_csv_list,
)
from models.base import JobKind
from schemas.results import Rejection, ResumeState, RunSummary

logger = logging.getLogger(__name__)

DEFAULT_GITLAB_URL = "https://gitlab.com"
DEFAULT_RPS = 1.0
DEFAULT_PER_PAGE = 10
DEFAULT_STATE_FILE = "./dx_backfill_logs.txt"
DEFAULT_FAILURES = "./gitlab_onboarding_failures.csv"
FINISHED_PAYLOAD = {"finished": True}


def iter_pairs(groups: List[str], users: List[str]) -> Iterator[WorkUnit]:
    for group in groups:
        for username in users:
            yield WorkUnit(
                source=f"group:{group}",
                position={"group": str(group), "username": username},
            )


def skip_completed(units: List[WorkUnit], resume: Optional[ResumeState]) -> List[WorkUnit]:
    """
    Units still to process.

    Versioned markers skip ``completed_units`` pairs. Legacy markers name
    the pair that was in progress, which is processed again.
    """
    if resume is None:
        return units
    if resume.completed_units:
        return units[resume.completed_units:]
    for index, unit in enumerate(units):
        if unit.position == resume.position:
            return units[index:]
    logger.warning(f"Resume position {describe_position(resume.position)} not found; starting from the beginning")
    return units


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--gitlab-url", help=f"GitLab base URL. Falls back to GITLAB_INSTANCE_URL (default {DEFAULT_GITLAB_URL}).")
    parser.add_argument("--gitlab-token", help="GitLab personal access token. Falls back to GITLAB_API_TOKEN.")
    parser.add_argument("--dx-webhook", help="DX webhook URL. Falls back to DX_WEBHOOK_URL.")
    parser.add_argument("--groups", help="Comma-separated GitLab group ids. Falls back to GITLAB_GROUPS.")
    parser.add_argument("--users", help="Comma-separated GitLab usernames. Falls back to GITLAB_USERS.")
    parser.add_argument("--per-page", type=int, default=DEFAULT_PER_PAGE, help="Merge requests per user.")
    parser.add_argument("--resume", action="store_true", help="Resume from the marker without asking.")
    parser.add_argument("--state-file", default=DEFAULT_STATE_FILE, help="Resume marker path.")
    return add_common_arguments(parser, DEFAULT_RPS, DEFAULT_FAILURES, token=False)


def build_config(args: argparse.Namespace, settings: Settings) -> JobConfig:
    options = common_config(args, settings, DEFAULT_RPS, DEFAULT_FAILURES)
    gitlab_token = require(
        first_set(args.gitlab_token, settings.GITLAB_API_TOKEN),
        "GitLab token",
        "Set --gitlab-token or GITLAB_API_TOKEN.",
    )
    webhook = require(
        first_set(args.dx_webhook, settings.DX_WEBHOOK_URL),
        "DX webhook",
        "Set --dx-webhook or DX_WEBHOOK_URL.",
    )
    groups = split_csv_list(first_set(args.groups, settings.GITLAB_GROUPS))
    users = split_csv_list(first_set(args.users, settings.GITLAB_USERS))
    require(groups, "groups", "Set --groups or GITLAB_GROUPS.")
    require(users, "users", "Set --users or GITLAB_USERS.")

    return JobConfig(
        job_kind=JobKind.GITLAB_ONBOARDING.value,
        target_url=webhook,
        state_file=Path(args.state_file),
        auto_resume=args.resume,
        options={
            "gitlab_url": first_set(args.gitlab_url, settings.GITLAB_INSTANCE_URL, DEFAULT_GITLAB_URL),
            "gitlab_token": gitlab_token,
            "groups": groups,
            "users": users,
            "per_page": args.per_page,
        },
        **options,
    )


async def run(
    config: JobConfig,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    prompt: Callable[[str], str] = input,
) -> RunSummary:
    opts: Dict[str, Any] = config.options
    owns_client = client is None
    client = client or build_http_client(config)

    limiter = build_limiter(config, sleep)
    webhook = HTTPSink(
        config.target_url,
        client=client,
        timeout=config.timeout_seconds,
        response_check=reject_ok_false,
    )
    sender = build_sender(config, webhook, limiter=limiter, sleep=sleep)
    gitlab = GitLabExtractor(
        build_sender(config, limiter=limiter, sleep=sleep, dry_run=False),
        client,
        opts["gitlab_url"],
        opts["gitlab_token"],
        timeout=config.timeout_seconds,
    )

    tracker = ResumeTracker(config.state_file, config.job_kind, config.auto_resume, prompt)
    runner = ImportRunner(
        job_kind=config.job_kind,
        sender=sender,
        failure_log=FailureLogger(config.failure_log_path) if config.failure_log_path else None,
    )
    transformer = GitLabMergeTransformer()
    summary = runner.new_summary()

    units = list(iter_pairs(opts["groups"], opts["users"]))
    resume = tracker.resume_point()
    pending = skip_completed(units, resume)
    completed = len(units) - len(pending)
    summary.records_skipped = completed
    logger.info("[DX backfill] Resuming from saved state..." if resume else "[DX backfill] Starting...")

    async def process_pair(unit: WorkUnit) -> None:
        group, username = unit.position["group"], unit.position["username"]
        logger.info(f"[DX backfill] Getting Group {group} data for {username}...")
        mrs = await gitlab.earliest_merged_mrs(group, username, opts["per_page"])

        for mr in mrs:
            summary.records_read += 1
            record = {**mr, "username": username}
            result = transformer.transform(record)
            if isinstance(result, Rejection):
                runner.reject(WorkUnit(unit.source, unit.position, record), result, summary)
                continue

            send_result = await sender.send(result)
            if not send_result.ok:
                summary.records_failed += 1
                runner.log_failure(unit, str(result.id), send_result.error or "Delivery failed", result)
                raise PermanentSinkError(
                    f"DX webhook rejected MR {result.id}: {send_result.error}",
                    context={"group": group, "username": username},
                    status_code=send_result.status_code,
                )
            summary.records_sent += 1

    try:
        try:
            for unit in pending:
                await process_pair(unit)
                completed += 1
                tracker.save(unit.position, completed)
        except DXImportError:
            logger.error("[DX backfill] Exiting with errors; resume file retained.")
            raise

        finish = await sender.send(FINISHED_PAYLOAD)
        if not finish.ok:
            logger.warning(f"[DX backfill] Finished, but DX finish ping failed: {finish.error}")
    finally:
        if owns_client:
            await client.aclose()

    tracker.clear()
    logger.info("[DX backfill] Done! Your backfill was successful.")
    runner.log_summary(summary)
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    return execute_job(build_parser(), build_config, run, argv)


if __name__ == "__main__":
    raise SystemExit(main())

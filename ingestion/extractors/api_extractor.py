"""
Third-party API readers (GitLab, Tabnine, Confluence).

Every GET goes through a ResilientSender, so 429, 5xx, timeouts and
transport errors get the same retry policy and throttle as the writes.
The sender used here must not be in dry-run mode: dry-run suppresses
writes only.
"""

import httpx
from typing import Any, Dict, List, Optional
import logging

from ingestion.loaders.http_loader import HTTPSink
from ingestion.sender import ResilientSender
from schemas.results import SendResult
from core.exceptions import SourceError

logger = logging.getLogger(__name__)


def records_from(data: Any, keys: tuple = ("data", "results")) -> List[Dict[str, Any]]:
    """Handle list bodies and ``{"data": [...]}`` / ``{"results": [...]}`` envelopes"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


class APIExtractor:
    """
    Base reader: one throttled, retried GET returning decoded JSON.

    Attributes:
        sender: Non-dry-run sender (retry policy + limiter)
        client: Shared httpx client
        timeout: Per-request timeout in seconds
    """

    source_name = "api"

    def __init__(
        self,
        sender: ResilientSender,
        client: httpx.AsyncClient,
        timeout: float = 30.0,
    ):
        if sender.dry_run:
            raise ValueError("API reads need a sender that is not in dry-run mode")
        self.sender = sender
        self.client = client
        self.timeout = timeout

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
        auth: Optional[httpx.Auth] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> SendResult:
        sink = HTTPSink(
            url,
            token=token,
            client=self.client,
            method="GET",
            timeout=self.timeout,
            auth=auth,
            headers=headers,
        )
        return await self.sender.send(params or {}, sink=sink)

    async def get_json(self, url: str, **kwargs) -> Any:
        """
        GET and decode, raising when the call failed for good.

        Raises:
            SourceError: Permanent failure or retries exhausted
        """
        result = await self.get(url, **kwargs)
        if not result.ok:
            raise SourceError(
                f"{self.source_name} request failed: {result.error}",
                context={"url": url, "status_code": result.status_code, "attempts": result.attempts}
            )
        return result.data


class GitLabExtractor(APIExtractor):
    """Earliest merged merge requests per (group, author)"""

    source_name = "GitLab"

    def __init__(self, sender: ResilientSender, client: httpx.AsyncClient, base_url: str, token: str, timeout: float = 30.0):
        super().__init__(sender, client, timeout)
        self.base_url = base_url.rstrip("/")
        self.token = token

    async def earliest_merged_mrs(self, group: str, username: str, per_page: int = 10) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/api/v4/groups/{group}/merge_requests"
        params = {
            "author_username": username,
            "per_page": per_page,
            "state": "merged",
            "order_by": "created_at",
            "sort": "asc",
        }
        data = await self.get_json(url, params=params, headers={"PRIVATE-TOKEN": self.token})
        return records_from(data)


class TabnineExtractor(APIExtractor):
    """Tabnine Enterprise usage metrics (single request)"""

    source_name = "Tabnine"
    USAGE_URL = "https://api.tabnine.com/enterprise/usage"

    def __init__(self, sender: ResilientSender, client: httpx.AsyncClient, api_key: str, url: Optional[str] = None, timeout: float = 60.0):
        super().__init__(sender, client, timeout)
        self.api_key = api_key
        self.url = url or self.USAGE_URL

    async def fetch_usage(self) -> List[Dict[str, Any]]:
        data = await self.get_json(self.url, token=self.api_key)
        records = records_from(data)
        logger.info(f"Fetched {len(records)} usage rows from Tabnine")
        return records


class ConfluenceExtractor(APIExtractor):
    """
    Footer and inline comments of Confluence pages (Cloud API v2).

    Pages that cannot be read (401, other 4xx, retries exhausted) are
    skipped with a warning and yield no comments.
    """

    source_name = "Confluence"
    COMMENT_KINDS = ("footer-comments", "inline-comments")

    def __init__(
        self,
        sender: ResilientSender,
        client: httpx.AsyncClient,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = 30.0,
    ):
        super().__init__(sender, client, timeout)
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(email, api_token)

    async def page_comments(self, page_id: str, kind: str) -> List[Dict[str, Any]]:
        if kind not in self.COMMENT_KINDS:
            raise ValueError(f"Unknown comment kind: {kind}")
        url = f"{self.base_url}/wiki/api/v2/pages/{page_id}/{kind}"
        logger.info(f"Requesting [{kind}] for page [{page_id}]")

        result = await self.get(url, params={"expand": "body.storage,body.plain,createdBy"}, auth=self.auth)
        if not result.ok:
            logger.warning(f"Skipping {kind} for page {page_id}: {result.error}")
            return []
        return records_from(result.data, keys=("results",))

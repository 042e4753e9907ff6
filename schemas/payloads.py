"""
Pydantic schemas for the payloads each job sends, with validation
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ingestion.transformers.fields import parse_list, to_int_or_none


class DXPayload(BaseModel):
    """
    Base for everything handed to a sink.

    Ensures:
    - Surrounding whitespace is stripped from strings
    - Unknown keys are rejected (typos in field mappings fail loudly)
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict; absent optional fields are omitted"""
        return self.model_dump(mode="json", exclude_none=True)


class PipelineRunPayload(DXPayload):
    """Body of ``pipelineRuns.sync``"""

    pipeline_name: str = Field(..., min_length=1)
    pipeline_source: str = Field(..., min_length=1)
    reference_id: str = Field(..., min_length=1)
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    status: str = "unknown"
    repository: Optional[str] = None
    commit_sha: Optional[str] = None
    pr_number: Optional[str] = None
    head_branch: Optional[str] = None
    email: Optional[str] = None

    @field_validator("started_at", "finished_at", mode="before")
    @classmethod
    def parse_epoch(cls, v):
        """Unparseable numbers are treated as absent"""
        return to_int_or_none(v)


class IncidentPayload(DXPayload):
    """Body of ``incidents.sync``"""

    reference_id: str = Field(..., min_length=1)
    source_name: str = "incident_io"
    priority: Optional[str] = None
    name: Optional[str] = None
    started_at: Optional[str] = None
    resolved_at: Optional[str] = None
    source_url: str = ""
    services: List[str] = Field(default_factory=list)

    @field_validator("services", mode="before")
    @classmethod
    def clean_services(cls, v):
        return parse_list(v)


class DeploymentPayload(DXPayload):
    """Body of ``deployments.create``"""

    deployed_at: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)
    commit_sha: Optional[str] = None
    repository: Optional[str] = None
    merge_commit_shas: Optional[List[str]] = None
    reference_id: Optional[str] = None
    source_url: Optional[str] = None
    source_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    integration_branch: Optional[str] = None
    success: Optional[bool] = None
    environment: Optional[str] = None

    @field_validator("merge_commit_shas", mode="before")
    @classmethod
    def clean_merge_shas(cls, v):
        parsed = parse_list(v)
        return parsed or None


class PullServicesPayload(DXPayload):
    """Body of ``deployments.setPullServices``"""

    repository: str = Field(..., min_length=1)
    pull_number: int
    services: List[str] = Field(..., min_length=1)

    @field_validator("services", mode="before")
    @classmethod
    def clean_services(cls, v):
        return parse_list(v)

    @property
    def group_key(self) -> str:
        return f"{self.repository}#{self.pull_number}"


class GitLabMergePayload(DXPayload):
    """One merged merge request forwarded to the DX onboarding webhook"""

    source: str = "gitlab"
    id: int
    username: str = Field(..., min_length=1)
    merged_at: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None


class TabnineUsageRow(DXPayload):
    """One row of ``custom.tabnine_daily_usages``"""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    date: Optional[dt.date] = None
    email: Optional[str] = None
    user_identifier: Optional[str] = None
    user_name: Optional[str] = None
    current_team: Optional[str] = None
    user_role: Optional[str] = None
    languages: Optional[List[str]] = None
    ides: Optional[List[str]] = None
    number_of_devices: Optional[int] = None
    num_of_keystrokes: Optional[int] = None
    number_of_completions: Optional[int] = None
    num_of_characters_added: Optional[int] = None
    num_of_lines_completed: Optional[int] = None
    chat_interactions: Optional[int] = None
    chat_consumption: Optional[int] = None
    copy_code_consumption: Optional[int] = None
    chat_consumed_characters: Optional[int] = None
    chat_consumed_lines: Optional[int] = None
    copy_clicks: Optional[int] = None
    insert_clicks: Optional[int] = None
    click_thumbs: Optional[int] = None
    copied_text: Optional[int] = None
    click_navs: Optional[int] = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_usage_date(cls, v):
        """Full timestamps are truncated to their calendar date"""
        if v is None or v == "":
            return None
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, str):
            return dt.datetime.fromisoformat(v.strip().replace("Z", "+00:00")).date()
        return v

    @field_validator("languages", "ides", mode="before")
    @classmethod
    def clean_lists(cls, v):
        parsed = parse_list(v)
        return parsed or None

    def to_row(self) -> Dict[str, Any]:
        """Column dict for the INSERT, every column present"""
        return self.model_dump()

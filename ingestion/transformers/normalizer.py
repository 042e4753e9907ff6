"""
Transform raw CSV/API records into validated payloads, or explicit rejections
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple, Union
from pydantic import ValidationError
import logging

from core.exceptions import ValidationRejection
from ingestion.transformers.fields import (
    get_field,
    normalize_headers,
    parse_bool,
    parse_list,
    to_int_or_none,
    to_iso8601,
    try_json,
)
from schemas.payloads import (
    DXPayload,
    DeploymentPayload,
    GitLabMergePayload,
    IncidentPayload,
    PipelineRunPayload,
    PullServicesPayload,
    TabnineUsageRow,
)
from schemas.results import Rejection

logger = logging.getLogger(__name__)

TransformResult = Union[DXPayload, Rejection]


def summarize_validation_error(error: ValidationError) -> str:
    """``field: message; field: message`` from a pydantic ValidationError"""
    parts = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err.get("loc", ())) or "payload"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


class RecordTransformer(ABC):
    """
    Turn one raw record into one payload.

    Handles:
    - Case-insensitive, trimmed column lookups
    - Required fields and one-of field groups
    - Payload validation (pydantic)

    ``transform`` never raises for bad data: every problem becomes a
    ``Rejection`` the runner can count and log.
    """

    #: Columns that must be present and non-blank
    required_fields: Sequence[str] = ()
    #: Groups of columns where at least one member must be present
    one_of_fields: Sequence[Tuple[str, ...]] = ()
    #: Column identifying the record in logs and the failure log
    reference_field: str = "reference_id"

    def transform(self, record: Dict[str, Any]) -> TransformResult:
        normalized = normalize_headers(record)
        reference_id = self.reference_id(normalized)

        missing = [name for name in self.required_fields if get_field(normalized, name) is None]
        if missing:
            return Rejection(
                reason=f"Missing required field(s): {', '.join(missing)}",
                reference_id=reference_id,
                missing_fields=missing,
            )

        for group in self.one_of_fields:
            if all(get_field(normalized, name) is None for name in group):
                return Rejection(
                    reason=f"One of {', '.join(group)} is required",
                    reference_id=reference_id,
                    missing_fields=list(group),
                )

        try:
            return self.build_payload(normalized)
        except ValidationError as e:
            return Rejection(reason=summarize_validation_error(e), reference_id=reference_id)
        except ValidationRejection as e:
            return Rejection(reason=e.message, reference_id=reference_id)
        except (ValueError, TypeError) as e:
            return Rejection(reason=str(e), reference_id=reference_id)

    @abstractmethod
    def build_payload(self, record: Dict[str, Any]) -> DXPayload:
        """Build the payload from a header-normalized record"""
        pass

    def reference_id(self, record: Dict[str, Any]) -> Optional[str]:
        value = get_field(normalize_headers(record), self.reference_field)
        return str(value) if value is not None else None


class PipelineRunTransformer(RecordTransformer):
    """Chunk-file rows -> ``pipelineRuns.sync`` bodies"""

    required_fields = ("pipeline_name", "pipeline_source", "reference_id")

    def build_payload(self, record: Dict[str, Any]) -> PipelineRunPayload:
        return PipelineRunPayload(
            pipeline_name=get_field(record, "pipeline_name"),
            pipeline_source=get_field(record, "pipeline_source"),
            reference_id=get_field(record, "reference_id"),
            started_at=get_field(record, "started_at"),
            finished_at=get_field(record, "finished_at"),
            status=get_field(record, "status", "unknown"),
            repository=get_field(record, "repository"),
            commit_sha=get_field(record, "commit_sha"),
            pr_number=get_field(record, "pr_number"),
            head_branch=get_field(record, "head_branch"),
            email=get_field(record, "email"),
        )


class IncidentTransformer(RecordTransformer):
    """Incident export rows -> ``incidents.sync`` bodies"""

    required_fields = ("reference_id",)

    def build_payload(self, record: Dict[str, Any]) -> IncidentPayload:
        return IncidentPayload(
            reference_id=get_field(record, "reference_id"),
            source_name=get_field(record, "source_name", "incident_io"),
            priority=get_field(record, "priority"),
            name=get_field(record, "name"),
            started_at=to_iso8601(get_field(record, "started_at")),
            resolved_at=to_iso8601(get_field(record, "resolved_at")),
            source_url=get_field(record, "source_url", ""),
            services=get_field(record, "services"),
        )


class DeploymentTransformer(RecordTransformer):
    """
    Deployment rows -> ``deployments.create`` bodies.

    ``token`` and ``base_url`` columns are per-row delivery overrides and
    are not part of the body.
    """

    required_fields = ("deployed_at", "service")

    def build_payload(self, record: Dict[str, Any]) -> DeploymentPayload:
        metadata = try_json(get_field(record, "metadata"))
        return DeploymentPayload(
            deployed_at=get_field(record, "deployed_at"),
            service=get_field(record, "service"),
            commit_sha=get_field(record, "commit_sha"),
            repository=get_field(record, "repository"),
            merge_commit_shas=get_field(record, "merge_commit_shas"),
            reference_id=get_field(record, "reference_id"),
            source_url=get_field(record, "source_url"),
            source_name=get_field(record, "source_name"),
            metadata=metadata if isinstance(metadata, dict) else None,
            integration_branch=get_field(record, "integration_branch"),
            success=parse_bool(get_field(record, "success")),
            environment=get_field(record, "environment"),
        )


class PullServicesTransformer(RecordTransformer):
    """
    Rows (or merged groups) -> ``deployments.setPullServices`` bodies.

    ``services`` wins over ``service``; either may be a JSON array or a
    delimited list.
    """

    required_fields = ("repository", "pull_number")
    one_of_fields = (("services", "service"),)
    reference_field = "repository"

    def build_payload(self, record: Dict[str, Any]) -> PullServicesPayload:
        pull_number = to_int_or_none(get_field(record, "pull_number"))
        if pull_number is None:
            raise ValidationRejection(
                f"pull_number is not numeric: {get_field(record, 'pull_number')!r}",
                context={"field": "pull_number"},
            )
        services = parse_list(get_field(record, "services")) or parse_list(get_field(record, "service"))
        return PullServicesPayload(
            repository=get_field(record, "repository"),
            pull_number=pull_number,
            services=services,
        )

    def reference_id(self, record: Dict[str, Any]) -> Optional[str]:
        record = normalize_headers(record)
        repository = get_field(record, "repository")
        if repository is None:
            return None
        return f"{repository}#{get_field(record, 'pull_number', '')}"


class TabnineUsageTransformer(RecordTransformer):
    """Tabnine usage API items -> ``custom.tabnine_daily_usages`` rows"""

    reference_field = "email"

    def build_payload(self, record: Dict[str, Any]) -> TabnineUsageRow:
        return TabnineUsageRow.model_validate(record)


class GitLabMergeTransformer(RecordTransformer):
    """GitLab merge request (plus ``username``) -> DX onboarding webhook body"""

    required_fields = ("id", "username")
    reference_field = "id"

    def build_payload(self, record: Dict[str, Any]) -> GitLabMergePayload:
        return GitLabMergePayload(
            id=get_field(record, "id"),
            username=get_field(record, "username"),
            merged_at=get_field(record, "merged_at"),
            url=get_field(record, "web_url", get_field(record, "url")),
            title=get_field(record, "title"),
        )

"""
Pydantic schemas for payloads, delivery results and persisted state.

Modules:
    payloads: One model per DX endpoint / table the jobs write to
    results: SendResult, Rejection, FailureRecord, ResumeState, RunSummary

Usage:
    from schemas.payloads import IncidentPayload
    from schemas.results import SendResult, ResumeState

Example:
    payload = IncidentPayload(reference_id="INC-1", services="api|web")
    payload.to_wire()
    # {'reference_id': 'INC-1', 'source_name': 'incident_io',
    #  'source_url': '', 'services': ['api', 'web']}
"""

__all__ = [
    # Payloads
    "DXPayload",
    "PipelineRunPayload",
    "IncidentPayload",
    "DeploymentPayload",
    "PullServicesPayload",
    "GitLabMergePayload",
    "TabnineUsageRow",
    # Results / state
    "SendResult",
    "Rejection",
    "FailureRecord",
    "ResumeState",
    "RunSummary",
]

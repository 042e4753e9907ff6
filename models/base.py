from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SendStatus(str, enum.Enum):
    """Outcome classification of one delivery"""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class JobKind(str, enum.Enum):
    """Job identifiers, also written into resume markers"""
    PIPELINES = "pipelines"
    INCIDENTS = "incidents"
    DEPLOYMENTS = "deployments"
    SET_PULL_SERVICES = "set-pull-services"
    GITLAB_ONBOARDING = "gitlab-onboarding"
    SPLIT_CSV = "split-csv"
    TABNINE_USAGE = "tabnine-usage"
    USER_TAGS = "user-tags"
    CONFLUENCE_COMMENTS = "confluence-comments"

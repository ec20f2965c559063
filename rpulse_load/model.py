"""
Data‑model classes for the runner‑pulse webhook load scenario.

Includes:
* **JobAction**, **RunnerType** enums
* **WorkflowJob** / **WebhookEvent** – the ``workflow_job`` webhook payload
* **JobState** – per‑user transient record of a job in flight
* Helpers for ISO‑8601 timestamps in the JavaScript ``toISOString`` format.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from dateutil import parser as dtparse
from pydantic import BaseModel, Field

SELF_HOSTED_LABEL = "self-hosted"


# Helper functions

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Render *dt* as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC, millisecond precision)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Return an aware UTC datetime for *value*."""
    dt = dtparse.isoparse(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# Enums

class JobAction(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class RunnerType(str, Enum):
    GITHUB_HOSTED = "github-hosted"
    SELF_HOSTED = "self-hosted"

    @classmethod
    def from_labels(cls, labels: List[str]) -> "RunnerType":
        """Self‑hosted when the label list carries ``self-hosted``."""
        if SELF_HOSTED_LABEL in labels:
            return cls.SELF_HOSTED
        return cls.GITHUB_HOSTED


# Payload classes

class WorkflowJob(BaseModel):
    id: int
    labels: List[str] = Field(default_factory=list)
    created_at: str
    started_at: Optional[str] = None    # from in_progress onward
    completed_at: Optional[str] = None  # completed only


class WebhookEvent(BaseModel):
    """One lifecycle transition notification (``workflow_job`` event)."""

    action: JobAction
    workflow_job: WorkflowJob

    def to_json(self) -> str:
        """Compact JSON with absent timestamps left out entirely."""
        return self.model_dump_json(exclude_none=True)


class JobState(BaseModel):
    """What the emitting user remembers about one of its jobs."""

    status: JobAction
    created_at: Optional[datetime] = None
    started_at: Optional[str] = None

"""
Unit tests for payload models and timestamp helpers.
"""

import json
from datetime import datetime, timezone

from rpulse_load.model import (
    JobAction,
    RunnerType,
    WebhookEvent,
    WorkflowJob,
    format_iso,
    parse_iso,
)


def test_format_iso_matches_js_to_iso_string():
    dt = datetime(2024, 5, 1, 12, 0, 3, 456789, tzinfo=timezone.utc)
    assert format_iso(dt) == "2024-05-01T12:00:03.456Z"


def test_format_iso_treats_naive_as_utc():
    assert format_iso(datetime(2024, 5, 1)) == "2024-05-01T00:00:00.000Z"


def test_parse_iso_roundtrip():
    dt = datetime(2024, 5, 1, 12, 0, 3, 456000, tzinfo=timezone.utc)
    assert parse_iso(format_iso(dt)) == dt


def test_queued_event_omits_absent_timestamps():
    event = WebhookEvent(
        action=JobAction.QUEUED,
        workflow_job=WorkflowJob(id=1, created_at="2024-05-01T00:00:00.000Z"),
    )
    data = json.loads(event.to_json())
    assert data == {
        "action": "queued",
        "workflow_job": {"id": 1, "labels": [], "created_at": "2024-05-01T00:00:00.000Z"},
    }


def test_runner_type_from_labels():
    assert RunnerType.from_labels(["self-hosted"]) is RunnerType.SELF_HOSTED
    assert RunnerType.from_labels([]) is RunnerType.GITHUB_HOSTED
    assert RunnerType.from_labels(["ubuntu-latest"]) is RunnerType.GITHUB_HOSTED

"""
Unit tests for :mod:`rpulse_load.emitter`.

A fake transport captures every POST so the tests can inspect the exact body,
headers and decoded payload of each lifecycle event. Time is frozen with
``freezegun`` and advanced by the injected sleep.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import random
from datetime import timedelta
from types import SimpleNamespace
from urllib.parse import unquote

import httpx
import pytest
from freezegun import freeze_time

from rpulse_load.config import Settings
from rpulse_load.emitter import (
    CHECK_STATUS_200,
    CHECK_SUCCESS_BODY,
    AsyncJobLifecycleEmitter,
    CheckTally,
    JobLifecycleEmitter,
    MissingJobStateError,
    derive_job_id,
    encode_body,
)
from rpulse_load.model import JobAction, WebhookEvent, WorkflowJob, utcnow

SECRET = "unit-secret"
SETTINGS = Settings(webhook_url="http://hooks.test/webhook", secret=SECRET, seed=1)


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = {"status": "success"} if body is None else body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeTransport:
    """Records ``post(url, data=..., headers=...)`` calls."""

    def __init__(self, response=None):
        self.calls = []
        self.response = response or FakeResponse()

    def __call__(self, url, data, headers):
        self.calls.append(SimpleNamespace(url=url, data=data, headers=headers))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def payloads(self) -> list[dict]:
        return [json.loads(unquote(c.data[len("payload="):])) for c in self.calls]


def _emitter(transport, **kw):
    kw.setdefault("rng", random.Random(42))
    kw.setdefault("sleep", lambda _s: None)
    return JobLifecycleEmitter(transport, SETTINGS, user_index=kw.pop("user_index", 2), **kw)


# Job IDs

def test_job_id_from_user_and_iteration():
    assert derive_job_id(2, 5) == 20005


def test_run_iteration_uses_derived_job_id():
    transport = FakeTransport()
    job_id = _emitter(transport, user_index=2).run_iteration(5)
    assert job_id == 20005
    assert {p["workflow_job"]["id"] for p in transport.payloads()} == {20005}


# Lifecycle payloads

def test_lifecycle_field_presence_and_carry_over():
    transport = FakeTransport()
    with freeze_time("2024-05-01T12:00:00Z") as frozen:
        emitter = _emitter(transport, sleep=lambda s: frozen.tick(timedelta(seconds=s)))
        emitter.run_iteration(0)

    queued, running, done = transport.payloads()
    assert [queued["action"], running["action"], done["action"]] == [
        "queued", "in_progress", "completed",
    ]

    assert "started_at" not in queued["workflow_job"]
    assert "completed_at" not in queued["workflow_job"]
    assert "started_at" in running["workflow_job"]
    assert "completed_at" not in running["workflow_job"]
    assert "completed_at" in done["workflow_job"]

    # created_at fixed at job creation, started_at carried verbatim
    assert queued["workflow_job"]["created_at"] == "2024-05-01T12:00:00.000Z"
    assert running["workflow_job"]["created_at"] == queued["workflow_job"]["created_at"]
    assert done["workflow_job"]["created_at"] == queued["workflow_job"]["created_at"]
    assert done["workflow_job"]["started_at"] == running["workflow_job"]["started_at"]
    assert done["workflow_job"]["completed_at"] > done["workflow_job"]["started_at"]


def test_labels_are_empty_or_self_hosted():
    transport = FakeTransport()
    emitter = _emitter(transport, rng=random.Random(3))
    for it in range(20):
        emitter.run_iteration(it)
    seen = {tuple(p["workflow_job"]["labels"]) for p in transport.payloads()}
    assert seen <= {(), ("self-hosted",)}
    assert seen == {(), ("self-hosted",)}  # 60 draws, both outcomes expected


def test_job_state_removed_after_completion():
    emitter = _emitter(FakeTransport())
    emitter.run_iteration(0)
    assert emitter.jobs == {}


def test_sleep_ranges():
    slept: list[float] = []
    emitter = _emitter(FakeTransport(), rng=random.Random(9), sleep=slept.append)
    for it in range(50):
        emitter.run_iteration(it)
    for i in range(0, len(slept), 3):
        assert 1 <= slept[i] < 3
        assert 2 <= slept[i + 1] < 5
        assert 0 <= slept[i + 2] < 2


def test_seeded_runs_are_reproducible():
    a, b = FakeTransport(), FakeTransport()
    with freeze_time("2024-05-01T12:00:00Z"):
        _emitter(a, rng=random.Random(5)).run_iteration(0)
        _emitter(b, rng=random.Random(5)).run_iteration(0)
    assert [c.data for c in a.calls] == [c.data for c in b.calls]


# Missing state

def test_completed_without_in_progress_is_fatal():
    transport = FakeTransport()
    emitter = _emitter(transport)
    created = utcnow()
    emitter.queue(20005, created)

    with pytest.raises(MissingJobStateError) as exc:
        emitter.complete(20005, created)

    assert exc.value.job_id == 20005
    assert "20005" in str(exc.value)
    assert len(transport.calls) == 1  # the completed event was never sent


def test_missing_state_is_a_key_error():
    with pytest.raises(KeyError):
        _emitter(FakeTransport()).build_payload(1, JobAction.COMPLETED, utcnow())


# Wire format

def test_body_is_signed_exactly_as_sent():
    transport = FakeTransport()
    _emitter(transport).run_iteration(0)

    for call in transport.calls:
        assert call.headers["Content-Type"] == "application/x-www-form-urlencoded"
        expected = hmac.new(SECRET.encode(), call.data.encode(), hashlib.sha256).hexdigest()
        assert call.headers["X-Hub-Signature-256"] == f"sha256={expected}"
        assert call.url == "http://hooks.test/webhook"


def test_encode_body_escapes_json_specials():
    event = WebhookEvent(
        action=JobAction.QUEUED,
        workflow_job=WorkflowJob(id=7, labels=["self-hosted"], created_at="2024-01-01T00:00:00.000Z"),
    )
    body = encode_body(event)
    assert body.startswith("payload=%7B%22action%22%3A%22queued%22")
    for ch in '{}":,[] ':
        assert ch not in body[len("payload="):]
    assert json.loads(unquote(body[len("payload="):]))["workflow_job"]["id"] == 7


# Checks

def test_checks_recorded_independently():
    tally = CheckTally()
    transport = FakeTransport(FakeResponse(500, {"status": "success"}))
    _emitter(transport, record=tally).run_iteration(0)

    assert tally.failed(CHECK_STATUS_200) == 3
    assert tally.passed(CHECK_SUCCESS_BODY) == 3


def test_unparseable_body_fails_body_check_only():
    tally = CheckTally()
    transport = FakeTransport(FakeResponse(200, ValueError("not json")))
    _emitter(transport, record=tally).run_iteration(0)

    assert tally.passed(CHECK_STATUS_200) == 3
    assert tally.failed(CHECK_SUCCESS_BODY) == 3


def test_transport_error_fails_checks_without_raising():
    tally = CheckTally()
    transport = FakeTransport(ConnectionRefusedError("refused"))
    emitter = _emitter(transport, record=tally)

    assert emitter.run_iteration(0) == 20000
    assert tally.failed(CHECK_STATUS_200) == 3
    assert tally.failed(CHECK_SUCCESS_BODY) == 3
    assert tally.total_failed == 6
    assert "refused" in tally.failures[0]


class ErrorShapedResponse:
    """Status‑0 response with no body, as a refused connection yields in Locust."""

    status_code = 0
    text = None

    def __init__(self, error):
        self.error = error

    def json(self):
        return json.loads(self.text)  # TypeError, like Locust's FastResponse.json


def test_status_zero_error_response_fails_both_checks():
    tally = CheckTally()
    transport = FakeTransport(ErrorShapedResponse(ConnectionRefusedError("refused")))
    emitter = _emitter(transport, record=tally)

    assert emitter.run_iteration(0) == 20000
    assert len(transport.calls) == 3
    assert tally.failed(CHECK_STATUS_200) == 3
    assert tally.failed(CHECK_SUCCESS_BODY) == 3
    assert all("refused" in line for line in tally.failures)


def test_body_without_text_fails_body_check_only():
    tally = CheckTally()
    response = FakeResponse(200, TypeError("no text"))
    _emitter(FakeTransport(response), record=tally).run_iteration(0)

    assert tally.passed(CHECK_STATUS_200) == 3
    assert tally.failed(CHECK_SUCCESS_BODY) == 3


# Async variant

def test_async_emitter_matches_sync_lifecycle():
    sync_transport = FakeTransport()
    async_calls = []
    slept: list[float] = []

    async def post(url, data, headers):
        async_calls.append(data)
        return FakeResponse()

    async def sleep(seconds):
        slept.append(seconds)

    tally = CheckTally()
    with freeze_time("2024-05-01T12:00:00Z"):
        _emitter(sync_transport, rng=random.Random(8)).run_iteration(1)
        emitter = AsyncJobLifecycleEmitter(
            post, SETTINGS, user_index=2, rng=random.Random(8), sleep=sleep, record=tally,
        )
        job_id = asyncio.run(emitter.run_iteration(1))

    assert job_id == 20001
    assert async_calls == [c.data for c in sync_transport.calls]
    assert len(slept) == 3
    assert tally.passed(CHECK_STATUS_200) == 3
    assert tally.total_failed == 0
    assert emitter.jobs == {}


def test_async_emitter_transport_error():
    async def post(url, data, headers):
        raise httpx.ConnectError("refused")

    async def sleep(_s):
        return None

    tally = CheckTally()
    emitter = AsyncJobLifecycleEmitter(post, SETTINGS, user_index=1, sleep=sleep, record=tally)
    asyncio.run(emitter.run_iteration(0))
    assert tally.failed(CHECK_STATUS_200) == 3
    assert tally.failed(CHECK_SUCCESS_BODY) == 3

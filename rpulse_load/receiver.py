"""
FastAPI stub of the runner‑pulse webhook receiver.

Behaves like the production ``/webhook`` endpoint closely enough to be a load
target and an end‑to‑end test double:

* validates ``X-Hub-Signature-256`` against the raw body (skipped, with a
  warning, when no secret is configured),
* URL‑decodes the body and extracts the ``payload=`` JSON,
* tracks jobs in memory (status, runner type, timestamps, queue time),
* answers ``{"status": "success"}``.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, List, Optional
from urllib.parse import unquote_plus

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ValidationError

from rpulse_load.model import JobAction, RunnerType, WebhookEvent, parse_iso
from rpulse_load.signing import SIGNATURE_HEADER, verify

logger = logging.getLogger(__name__)

_PAYLOAD_PREFIX = "payload="


# Pydantic models

class JobRecord(BaseModel):
    id: int
    status: JobAction
    runner_type: RunnerType
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class Stats(BaseModel):
    running_self_hosted: int
    running_github_hosted: int
    queued: int
    events: int
    average_queue_seconds: float


# In-memory job store

class JobStore:
    def __init__(self) -> None:
        self.jobs: Dict[int, JobRecord] = {}
        self.queue_times: List[timedelta] = []
        self.events = 0

    def apply(self, event: WebhookEvent) -> JobRecord:
        """Insert or update the job carried by *event*."""
        wj = event.workflow_job
        record = JobRecord(
            id=wj.id,
            status=event.action,
            runner_type=RunnerType.from_labels(wj.labels),
            created_at=wj.created_at,
            started_at=wj.started_at,
            completed_at=wj.completed_at,
        )
        self.jobs[wj.id] = record
        self.events += 1

        if event.action is JobAction.IN_PROGRESS and wj.started_at:
            queue_time = parse_iso(wj.started_at) - parse_iso(wj.created_at)
            self.queue_times.append(queue_time)
            logger.debug("job %s was queued for %s", wj.id, queue_time)
        return record

    def running(self, runner_type: RunnerType) -> int:
        return sum(
            1 for j in self.jobs.values()
            if j.status is JobAction.IN_PROGRESS and j.runner_type is runner_type
        )

    def stats(self) -> Stats:
        avg = (
            sum(q.total_seconds() for q in self.queue_times) / len(self.queue_times)
            if self.queue_times else 0.0
        )
        return Stats(
            running_self_hosted=self.running(RunnerType.SELF_HOSTED),
            running_github_hosted=self.running(RunnerType.GITHUB_HOSTED),
            queued=sum(1 for j in self.jobs.values() if j.status is JobAction.QUEUED),
            events=self.events,
            average_queue_seconds=avg,
        )


# Request helpers

def _check_signature(raw: bytes, header: Optional[str], secret: str) -> None:
    if not header:
        logger.error("webhook rejected: missing %s header", SIGNATURE_HEADER)
        raise HTTPException(status_code=401, detail="Missing signature header")
    try:
        ok = verify(raw, header, secret)
    except ValueError:
        logger.error("webhook rejected: undecodable signature")
        raise HTTPException(status_code=401, detail="Invalid signature format")
    if not ok:
        logger.error("webhook rejected: invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


def _parse_event(raw: bytes) -> WebhookEvent:
    decoded = unquote_plus(raw.decode("utf-8", errors="replace"))
    if not decoded.startswith(_PAYLOAD_PREFIX):
        raise HTTPException(status_code=400, detail="Missing payload parameter")
    try:
        return WebhookEvent.model_validate_json(decoded[len(_PAYLOAD_PREFIX):])
    except ValidationError as exc:
        logger.error("failed to parse webhook JSON: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid JSON payload")


# App factory

def create_app(secret: str = "") -> FastAPI:
    """Return a stub receiver; an empty *secret* disables signature checks."""
    app = FastAPI(title="runner-pulse stub receiver")
    store = JobStore()
    app.state.store = store

    if not secret:
        logger.warning("no webhook secret set, signature validation disabled")

    @app.post("/webhook")
    async def webhook(request: Request) -> dict:
        raw = await request.body()
        if secret:
            _check_signature(raw, request.headers.get(SIGNATURE_HEADER), secret)
        store.apply(_parse_event(raw))
        return {"status": "success"}

    @app.get("/jobs/{job_id}", response_model=JobRecord)
    def get_job(job_id: int) -> JobRecord:
        try:
            return store.jobs[job_id]
        except KeyError:
            raise HTTPException(status_code=404, detail="Job not found")

    @app.get("/stats", response_model=Stats)
    def stats() -> Stats:
        return store.stats()

    return app

"""
Job lifecycle emitter for the runner‑pulse webhook load scenario.

One emitter belongs to exactly one virtual user. For every iteration it

1. derives a job ID from the user index and the iteration count,
2. sends ``queued`` → ``in_progress`` → ``completed`` webhook events for that
   job, sleeping a random amount between steps, and
3. checks every response twice (HTTP 200, ``{"status": "success"}``), handing
   each result to a recorder callback.

The job‑state mapping lives on the emitter, so two users never touch the same
dict. HTTP transport, sleeping and the random source are injected.
:class:`AsyncJobLifecycleEmitter` runs the same lifecycle with an awaitable
transport and sleep.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from rpulse_load.config import Settings
from rpulse_load.model import (
    SELF_HOSTED_LABEL,
    JobAction,
    JobState,
    WebhookEvent,
    WorkflowJob,
    format_iso,
    utcnow,
)
from rpulse_load.signing import SIGNATURE_HEADER, sign

logger = logging.getLogger(__name__)

# Job IDs stay unique across users only while iterations < JOB_ID_STRIDE
JOB_ID_STRIDE = 10_000

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

CHECK_STATUS_200 = "status was 200"
CHECK_SUCCESS_BODY = "response has success status"

# Characters JavaScript's encodeURIComponent leaves alone (besides A-Z a-z 0-9 - _ .)
_URI_COMPONENT_SAFE = "!~*'()"

Recorder = Callable[[str, bool, str], None]

# Raised by requests/sockets (OSError) and by httpx clients
TRANSPORT_ERRORS = (OSError, httpx.TransportError)


class MissingJobStateError(KeyError):
    """A ``completed`` event was requested for a job that never started."""

    def __init__(self, job_id: int) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"no in_progress state recorded for job {self.job_id}"


class CheckTally:
    """Pass/fail counters per check name; usable directly as a recorder."""

    def __init__(self) -> None:
        self.counts: Counter[Tuple[str, bool]] = Counter()
        self.failures: list[str] = []

    def __call__(self, name: str, passed: bool, detail: str = "") -> None:
        self.counts[(name, passed)] += 1
        if not passed:
            self.failures.append(f"{name}: {detail}" if detail else name)

    def passed(self, name: str) -> int:
        return self.counts[(name, True)]

    def failed(self, name: str) -> int:
        return self.counts[(name, False)]

    @property
    def total_failed(self) -> int:
        return sum(n for (_, ok), n in self.counts.items() if not ok)

    def summary(self) -> str:
        names = sorted({name for name, _ in self.counts})
        return "\n".join(
            f"{name:<30} passed={self.passed(name):<5d} failed={self.failed(name)}"
            for name in names
        )


# Helper functions

def derive_job_id(user_index: int, iteration: int) -> int:
    """``user_index * 10000 + iteration`` (see :data:`JOB_ID_STRIDE`)."""
    return user_index * JOB_ID_STRIDE + iteration


def encode_body(event: WebhookEvent) -> str:
    """Form body ``payload=<percent-encoded JSON>``; this exact string is signed."""
    return "payload=" + quote(event.to_json(), safe=_URI_COMPONENT_SAFE)


def _has_success_status(response: Any) -> bool:
    try:
        body = response.json()
    except (ValueError, TypeError):  # TypeError: no body text at all
        return False
    return isinstance(body, dict) and body.get("status") == "success"


def _null_recorder(name: str, passed: bool, detail: str = "") -> None:
    return None


# Emitter

class JobLifecycleEmitter:
    """Drive synthetic ``workflow_job`` lifecycles for one virtual user.

    *post* is called as ``post(target, data=body, headers=headers)`` and must
    return an object with ``status_code`` and ``json()`` (a ``requests`` or
    Locust response, or a FastAPI ``TestClient`` response). Connection
    failures may either raise (``requests``) or come back as a status‑0
    response carrying ``error`` (Locust ``FastHttpSession``); both fail the
    two checks without interrupting the lifecycle.
    """

    def __init__(
        self,
        post: Callable[..., Any],
        settings: Settings,
        *,
        user_index: int,
        target: Optional[str] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Any] = time.sleep,
        record: Optional[Recorder] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.user_index = user_index
        self.target = target or settings.webhook_url
        self.jobs: Dict[int, JobState] = {}
        self._post = post
        self._rng = rng or random.Random(settings.seed)
        self._sleep = sleep
        self._record = record or _null_recorder
        self._clock = clock
        self._stride_warned = False

    # payload construction

    def _labels(self) -> list[str]:
        return [SELF_HOSTED_LABEL] if self._rng.random() < 0.5 else []

    def build_payload(
        self,
        job_id: int,
        action: JobAction,
        created_at: datetime,
        started_at: Optional[datetime] = None,
    ) -> WebhookEvent:
        """Build the event for *action*; ``completed`` reads the tracked start."""
        job = WorkflowJob(
            id=job_id,
            labels=self._labels(),
            created_at=format_iso(created_at),
        )
        if action is JobAction.IN_PROGRESS:
            job.started_at = format_iso(started_at or self._clock())
        elif action is JobAction.COMPLETED:
            state = self.jobs.get(job_id)
            if state is None or state.started_at is None:
                raise MissingJobStateError(job_id)
            job.started_at = state.started_at
            job.completed_at = format_iso(self._clock())
        return WebhookEvent(action=action, workflow_job=job)

    # transport

    def _request(self, event: WebhookEvent) -> Tuple[str, Dict[str, str]]:
        body = encode_body(event)
        headers = {
            "Content-Type": FORM_CONTENT_TYPE,
            SIGNATURE_HEADER: sign(body, self.settings.secret),
        }
        logger.debug("POST %s job=%s action=%s", self.target,
                     event.workflow_job.id, event.action.value)
        return body, headers

    def _delivery_failed(self, event: WebhookEvent, exc: BaseException) -> None:
        logger.warning("webhook delivery failed for job %s: %s",
                       event.workflow_job.id, exc)
        self._record(CHECK_STATUS_200, False, str(exc))
        self._record(CHECK_SUCCESS_BODY, False, str(exc))

    def _check(self, event: WebhookEvent, response: Any) -> None:
        status = getattr(response, "status_code", None)
        error = getattr(response, "error", None)
        if not status and error is not None:
            self._delivery_failed(event, error)
            return
        self._record(CHECK_STATUS_200, status == 200, f"HTTP {status}")
        self._record(CHECK_SUCCESS_BODY, _has_success_status(response),
                     f"job {event.workflow_job.id} {event.action.value}")

    def send(self, event: WebhookEvent) -> Any:
        """Sign and POST *event*, then record both checks. Returns the response."""
        body, headers = self._request(event)
        try:
            response = self._post(self.target, data=body, headers=headers)
        except TRANSPORT_ERRORS as exc:
            self._delivery_failed(event, exc)
            return None
        self._check(event, response)
        return response

    def emit(
        self,
        job_id: int,
        action: JobAction,
        created_at: datetime,
        started_at: Optional[datetime] = None,
    ) -> Any:
        return self.send(self.build_payload(job_id, action, created_at, started_at))

    # job state

    def _track_queued(self, job_id: int, created_at: datetime) -> None:
        self.jobs[job_id] = JobState(status=JobAction.QUEUED, created_at=created_at)

    def _track_started(self, job_id: int, created_at: datetime, started_at: datetime) -> None:
        self.jobs[job_id] = JobState(
            status=JobAction.IN_PROGRESS,
            created_at=created_at,
            started_at=format_iso(started_at),
        )

    # lifecycle steps

    def queue(self, job_id: int, created_at: datetime) -> Any:
        response = self.emit(job_id, JobAction.QUEUED, created_at)
        self._track_queued(job_id, created_at)
        return response

    def start(self, job_id: int, created_at: datetime) -> Any:
        started_at = self._clock()
        response = self.emit(job_id, JobAction.IN_PROGRESS, created_at, started_at)
        self._track_started(job_id, created_at, started_at)
        return response

    def complete(self, job_id: int, created_at: datetime) -> Any:
        response = self.emit(job_id, JobAction.COMPLETED, created_at)
        del self.jobs[job_id]
        return response

    def _lifecycle(self, iteration: int) -> Iterator[Union[WebhookEvent, float]]:
        """Yield each event to send and each pause to take, in order.

        State is updated when the generator resumes, i.e. after the caller has
        sent the event just yielded.
        """
        if iteration >= JOB_ID_STRIDE and not self._stride_warned:
            logger.warning(
                "user %d reached %d iterations; job IDs now overlap user %d",
                self.user_index, JOB_ID_STRIDE, self.user_index + 1,
            )
            self._stride_warned = True

        job_id = derive_job_id(self.user_index, iteration)
        created_at = self._clock()

        yield self.build_payload(job_id, JobAction.QUEUED, created_at)
        self._track_queued(job_id, created_at)
        yield 1 + self._rng.random() * 2  # [1, 3)

        started_at = self._clock()
        yield self.build_payload(job_id, JobAction.IN_PROGRESS, created_at, started_at)
        self._track_started(job_id, created_at, started_at)
        yield 2 + self._rng.random() * 3  # [2, 5)

        yield self.build_payload(job_id, JobAction.COMPLETED, created_at)
        del self.jobs[job_id]
        yield self._rng.random() * 2      # [0, 2)

    def run_iteration(self, iteration: int) -> int:
        """Run one full job lifecycle and return its job ID."""
        for step in self._lifecycle(iteration):
            if isinstance(step, WebhookEvent):
                self.send(step)
            else:
                self._sleep(step)
        return derive_job_id(self.user_index, iteration)


class AsyncJobLifecycleEmitter(JobLifecycleEmitter):
    """Same lifecycle, awaiting *post* and *sleep* (``asyncio.sleep`` by default).

    *post* is awaited as ``post(target, data=body, headers=headers)``.
    """

    def __init__(self, post: Callable[..., Any], settings: Settings, **kwargs: Any) -> None:
        kwargs.setdefault("sleep", asyncio.sleep)
        super().__init__(post, settings, **kwargs)

    async def send(self, event: WebhookEvent) -> Any:  # type: ignore[override]
        body, headers = self._request(event)
        try:
            response = await self._post(self.target, data=body, headers=headers)
        except TRANSPORT_ERRORS as exc:
            self._delivery_failed(event, exc)
            return None
        self._check(event, response)
        return response

    async def run_iteration(self, iteration: int) -> int:  # type: ignore[override]
        for step in self._lifecycle(iteration):
            if isinstance(step, WebhookEvent):
                await self.send(step)
            else:
                await self._sleep(step)
        return derive_job_id(self.user_index, iteration)

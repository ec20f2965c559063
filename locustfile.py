"""
Locust workload for the runner‑pulse webhook receiver.

Every virtual user loops one ``workflow_job`` lifecycle per iteration:
queued → (1–3 s) → in_progress → (2–5 s) → completed → (0–2 s).

Profile (``LifecycleShape``): 0→15 users over 30 s, hold 200 s, 15→0 over 20 s.
The run fails when any request's p99 reaches ``RPULSE_P99_MS`` (default 300).

    RPULSE_WEBHOOK_URL=http://localhost:8080/webhook \\
    RPULSE_WEBHOOK_SECRET=your_secret_here \\
    locust -f locustfile.py --headless

Each response is checked twice; the results show up as ``CHECK`` rows
(``status was 200`` / ``response has success status``). Failed checks are
metrics: the exit code is decided by the p99 threshold only, not by
``--exit-code-on-error``.
"""

from __future__ import annotations

import itertools
import random

import gevent
from locust import FastHttpUser, constant, events, task

from rpulse_load.config import load_settings
from rpulse_load.emitter import JobLifecycleEmitter
from rpulse_load.shape import CHECK_REQUEST_TYPE, LifecycleShape, enforce_p99

SETTINGS = load_settings()

# 1-based virtual-user index, handed out as users spawn
_USER_INDEX = itertools.count(1)

__all__ = ["WebhookLifecycleUser", "LifecycleShape"]


class CheckFailed(Exception):
    """Marker exception so failed checks land in Locust's failure table."""


# User model
class WebhookLifecycleUser(FastHttpUser):
    host = SETTINGS.host
    wait_time = constant(0)  # think time lives inside the lifecycle

    def on_start(self):
        self.user_index = next(_USER_INDEX)
        self.iteration = 0
        seed = None if SETTINGS.seed is None else SETTINGS.seed + self.user_index
        self.emitter = JobLifecycleEmitter(
            self.client.post,
            SETTINGS,
            user_index=self.user_index,
            target=SETTINGS.path,
            rng=random.Random(seed),
            sleep=gevent.sleep,
            record=self._record_check,
        )

    def _record_check(self, name: str, passed: bool, detail: str = "") -> None:
        self.environment.events.request.fire(
            request_type=CHECK_REQUEST_TYPE,
            name=name,
            response_time=0,
            response_length=0,
            exception=None if passed else CheckFailed(detail),
            context={},
        )

    @task
    def job_lifecycle(self):
        iteration, self.iteration = self.iteration, self.iteration + 1
        self.emitter.run_iteration(iteration)


# Threshold: p99 request duration
@events.test_stop.add_listener
def _check_thresholds(environment, **_):
    enforce_p99(environment, SETTINGS.p99_ms)

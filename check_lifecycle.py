"""
Quick standalone script: run a few job lifecycles against the in‑process stub
receiver (FastAPI ``TestClient``, no network, no think time) and verify that

* every request passes both checks, and
* each job ends up ``completed`` with the ``started_at`` it was given.

Read‑only: no side‑effects besides console output.
"""

from __future__ import annotations

import random

from fastapi.testclient import TestClient

from rpulse_load.config import Settings
from rpulse_load.emitter import CheckTally, JobLifecycleEmitter
from rpulse_load.receiver import create_app

SECRET = "check-secret"
JOBS = 5

settings = Settings(webhook_url="/webhook", secret=SECRET, seed=7)
app = create_app(SECRET)
client = TestClient(app)
tally = CheckTally()


def _post(url, data, headers):
    return client.post(url, content=data, headers=headers)


emitter = JobLifecycleEmitter(
    _post,
    settings,
    user_index=1,
    rng=random.Random(settings.seed),
    sleep=lambda _s: None,
    record=tally,
)

# 1. Replay lifecycles
job_ids = [emitter.run_iteration(it) for it in range(JOBS)]

# 2. Inspect receiver state
bad: list[str] = []
for job_id in job_ids:
    rec = client.get(f"/jobs/{job_id}").json()
    if rec.get("status") != "completed" or not rec.get("started_at"):
        bad.append(f"job {job_id}: {rec}")

# 3. Report
ok = tally.total_failed == 0 and not bad and not emitter.jobs
print(tally.summary())
print(f"{len(job_ids)} jobs, {len(bad)} inconsistent {'✅' if ok else '❌'}")
print("stats:", client.get("/stats").json())
for line in tally.failures[:10] + bad[:10]:
    print(f"  • {line}")

"""
rpulse_load package initialization.

Signed ``workflow_job`` webhook lifecycles for load testing the runner‑pulse
receiver. The Locust entry point is ``locustfile.py`` at the repository root.
"""

from rpulse_load.emitter import (
    AsyncJobLifecycleEmitter,
    CheckTally,
    JobLifecycleEmitter,
    MissingJobStateError,
    derive_job_id,
    encode_body,
)
from rpulse_load.signing import sign, verify

__all__ = [
    "AsyncJobLifecycleEmitter",
    "CheckTally",
    "JobLifecycleEmitter",
    "MissingJobStateError",
    "derive_job_id",
    "encode_body",
    "sign",
    "verify",
]

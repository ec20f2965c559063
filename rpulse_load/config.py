"""
Environment‑supplied configuration for the load scenario.

==========================  ================================  =====================
Variable                    Default                           Meaning
==========================  ================================  =====================
``RPULSE_WEBHOOK_URL``      ``http://localhost:8080/webhook``  target endpoint
``RPULSE_WEBHOOK_SECRET``   ``your_secret_here``              shared HMAC secret
``RPULSE_P99_MS``           ``300``                           p99 threshold in ms
``RPULSE_SEED``             unset                             seeds the random source
==========================  ================================  =====================

``WEBHOOK_SECRET`` (the receiver's own variable) is honoured as a fallback for
the secret so both sides can share one environment.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

DEFAULT_WEBHOOK_URL = "http://localhost:8080/webhook"
DEFAULT_SECRET = "your_secret_here"
DEFAULT_P99_MS = 300


class Settings(BaseModel):
    webhook_url: str = DEFAULT_WEBHOOK_URL
    secret: str = DEFAULT_SECRET
    p99_ms: float = Field(DEFAULT_P99_MS, gt=0)
    seed: Optional[int] = None

    @property
    def host(self) -> str:
        """Scheme and authority, e.g. ``http://localhost:8080`` (Locust ``host``)."""
        parts = urlsplit(self.webhook_url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def path(self) -> str:
        """Request path relative to :attr:`host`, including any query string."""
        parts = urlsplit(self.webhook_url)
        path = parts.path or "/"
        return f"{path}?{parts.query}" if parts.query else path


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from *env* (defaults to ``os.environ``)."""
    env = os.environ if env is None else env
    values: dict = {}
    if env.get("RPULSE_WEBHOOK_URL"):
        values["webhook_url"] = env["RPULSE_WEBHOOK_URL"]
    secret = env.get("RPULSE_WEBHOOK_SECRET") or env.get("WEBHOOK_SECRET")
    if secret:
        values["secret"] = secret
    if env.get("RPULSE_P99_MS"):
        values["p99_ms"] = env["RPULSE_P99_MS"]
    if env.get("RPULSE_SEED"):
        values["seed"] = env["RPULSE_SEED"]
    return Settings.model_validate(values)

"""
asyncio‑based lifecycle generator for the ``/webhook`` endpoint (no Locust).

* Spawns ``CONN`` concurrent workers for ``SECS`` seconds.
* Each worker loops queued → in_progress → completed lifecycles through
  ``AsyncJobLifecycleEmitter``, the same payloads, signatures and think times
  as the Locust user.
* Prints p50 / p95 / p99 latencies, throughput and check tallies.

Target URL and secret come from ``RPULSE_WEBHOOK_URL`` / ``RPULSE_WEBHOOK_SECRET``.
"""

import asyncio
import random
import statistics
import time

import httpx

from rpulse_load.config import load_settings
from rpulse_load.emitter import AsyncJobLifecycleEmitter, CheckTally

SETTINGS = load_settings()
CONN = 15   # concurrent workers
SECS = 60   # test duration
latencies: list[float] = []
tally = CheckTally()


async def worker(user_index: int) -> None:
    """Loop job lifecycles until the global timer expires."""
    async with httpx.AsyncClient(timeout=10) as client:

        async def post(url: str, data: str, headers: dict) -> httpx.Response:
            t0 = time.perf_counter()
            resp = await client.post(url, content=data, headers=headers)
            latencies.append((time.perf_counter() - t0) * 1000)  # ms
            return resp

        seed = None if SETTINGS.seed is None else SETTINGS.seed + user_index
        emitter = AsyncJobLifecycleEmitter(
            post, SETTINGS, user_index=user_index, rng=random.Random(seed), record=tally,
        )
        stop_at = time.perf_counter() + SECS
        iteration = 0
        while time.perf_counter() < stop_at:
            await emitter.run_iteration(iteration)
            iteration += 1


async def main() -> None:
    await asyncio.gather(*(worker(i) for i in range(1, CONN + 1)))


if __name__ == "__main__":
    asyncio.run(main())
    if len(latencies) >= 2:
        p50, p95, p99 = [statistics.quantiles(latencies, n=100)[i] for i in (49, 94, 98)]
        print(f"p50={p50:.2f} ms  p95={p95:.2f} ms  p99={p99:.2f} ms")
        status = "✅" if p99 < SETTINGS.p99_ms else "❌"
        print(f"p99 threshold {SETTINGS.p99_ms:.0f} ms {status}")
    print(f"Throughput = {len(latencies)/SECS:,.1f} req/s")
    print(tally.summary())

"""
Command‑line interface for the runner‑pulse webhook load scenario.

Example – one lifecycle against a local receiver, no think time
---------------------------------------------------------------
    RPULSE_WEBHOOK_SECRET=s3cr3t rpulse-load run --iterations 1 --no-sleep
"""

from __future__ import annotations

import random
import time

import requests
import typer

from rpulse_load.config import load_settings
from rpulse_load.emitter import CheckTally, JobLifecycleEmitter
from rpulse_load.signing import sign as sign_body

# Typer application instance
app = typer.Typer(
    add_completion=False,
    help="Signed workflow_job webhook generator for the runner-pulse receiver.",
)


@app.command()
def sign(
    body: str = typer.Argument(..., help="Exact request body to sign"),
    secret: str | None = typer.Option(
        None, "--secret", "-s", help="Shared secret (defaults to the environment)"
    ),
) -> None:
    """Print the X-Hub-Signature-256 value for BODY."""
    typer.echo(sign_body(body, secret or load_settings().secret))


@app.command()
def run(
    iterations: int = typer.Option(1, "--iterations", "-n", min=1, help="Lifecycles to run"),
    user_index: int = typer.Option(1, "--user-index", "-u", min=0, help="Virtual-user index for job IDs"),
    no_sleep: bool = typer.Option(False, "--no-sleep", help="Skip think time between steps"),
) -> None:
    """Run ITERATIONS lifecycles sequentially; exit 1 if any check failed."""
    settings = load_settings()
    tally = CheckTally()

    with requests.Session() as session:
        emitter = JobLifecycleEmitter(
            session.post,
            settings,
            user_index=user_index,
            rng=random.Random(settings.seed),
            sleep=(lambda _s: None) if no_sleep else time.sleep,
            record=tally,
        )
        for it in range(iterations):
            job_id = emitter.run_iteration(it)
            typer.echo(f"job {job_id} done")

    typer.echo(tally.summary())
    if tally.total_failed:
        for line in tally.failures[:10]:
            typer.echo(f"  • {line}", err=True)
        raise typer.Exit(code=1)


@app.command()
def serve(
    port: int = typer.Option(8080, "--port", "-p", help="Listen port"),
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
) -> None:
    """Run the stub receiver with the configured secret."""
    import uvicorn

    from rpulse_load.receiver import create_app

    uvicorn.run(create_app(load_settings().secret), host=host, port=port)


# ``python -m rpulse_load.cli`` entry‑point

def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":
    app()

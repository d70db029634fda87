"""memora CLI: scheduling simulator, configuration and server commands."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Annotated

import typer

from memora.application.config import resolve_config
from memora.domain.srs.factory import ReviewScheduleFactory
from memora.domain.srs.policy import Sm2Policy
from memora.domain.srs.values import ReviewFeedback
from memora.infrastructure.clock import FixedClock

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="memora: spaced-repetition review scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage memora configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
):
    """Global settings for memora."""
    ctx.ensure_object(dict)
    level = "DEBUG" if verbose else resolve_config().log_level
    logging.getLogger("memora").setLevel(level)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _parse_start(value: str | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc).replace(microsecond=0)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise typer.BadParameter(f"invalid ISO timestamp: {value}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@app.command()
def simulate(
    feedback: Annotated[
        list[str], typer.Argument(help="Feedback sequence, e.g. good good again easy.")
    ],
    start: Annotated[
        str | None, typer.Option(help="ISO timestamp of the first exposure (default: now).")
    ] = None,
    gap_days: Annotated[
        float | None,
        typer.Option(help="Days between reviews. Default: review exactly when due."),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Emit JSON instead of a table.")] = False,
):
    """[bold green]Replay[/bold green] a feedback sequence through the scheduler."""
    parsed: list[ReviewFeedback] = []
    for raw in feedback:
        result = ReviewFeedback.create(raw)
        if result.is_failure:
            typer.echo(f"Error: {result.error}", err=True)
            raise typer.Exit(code=2)
        parsed.append(result.unwrap())

    config = resolve_config()
    sm2 = Sm2Policy(config.to_policy_config())
    clock = FixedClock(_parse_start(start))

    created = ReviewScheduleFactory(sm2, clock).create("simulated-student", "simulated-item")
    if created.is_failure:
        typer.echo(f"Error: {created.error}", err=True)
        raise typer.Exit(code=1)
    schedule = created.unwrap()
    schedule.clear_domain_events()

    steps = []
    for index, item in enumerate(parsed, start=1):
        if gap_days is None:
            clock.set(schedule.next_review_at)
        else:
            clock.advance(days=gap_days)

        outcome = schedule.process_review_feedback(item, sm2, clock)
        if outcome.is_failure:
            typer.echo(f"Error at step {index}: {outcome.error}", err=True)
            raise typer.Exit(code=1)

        reminders = [
            e for e in schedule.pull_domain_events() if e.event_type == "ReviewNotificationScheduled"
        ]
        steps.append(
            {
                "step": index,
                "feedback": item.value,
                "reviewed_at": clock.now().isoformat(),
                "interval_days": schedule.current_interval,
                "ease_factor": schedule.ease_factor,
                "consecutive_failures": schedule.consecutive_failures,
                "next_review_at": schedule.next_review_at.isoformat(),
                "reminders": len(reminders),
            }
        )

    if as_json:
        typer.echo(json.dumps(steps, indent=2))
        return

    typer.echo(f"{'#':>3}  {'feedback':<8} {'interval':>8} {'ease':>5} {'fails':>5}  next review")
    for step in steps:
        typer.echo(
            f"{step['step']:>3}  {step['feedback']:<8} {step['interval_days']:>7}d "
            f"{step['ease_factor']:>5.2f} {step['consecutive_failures']:>5}  {step['next_review_at']}"
        )


@app.command()
def policy():
    """Print the effective policy constants as JSON."""
    config = resolve_config()
    typer.echo(json.dumps(config.to_policy_config().as_dict(), indent=2))


@app.command()
def server(
    host: Annotated[str | None, typer.Option(help="Bind address.")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port.")] = None,
    reload: Annotated[bool, typer.Option(help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP API."""
    import uvicorn

    config = resolve_config({"host": host, "port": port})
    logger.info(f"Starting memora API on {config.host}:{config.port}")
    uvicorn.run("memora.server:app", host=config.host, port=config.port, reload=reload)


@config_app.command("show")
def config_show():
    """Print the resolved configuration as JSON."""
    config = resolve_config()
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))


def run() -> None:
    app()


if __name__ == "__main__":
    run()

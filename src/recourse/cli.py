"""CLI interface for recourse"""

import logging
import random
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import click

from recourse.application.decision_engine import RetryDecisionEngine
from recourse.domain.config import ConfigurationError, RetryPolicyConfig
from recourse.domain.models import AttemptOutcome, ExecutionAttemptHistory, Verdict
from recourse.infrastructure.config.config_manager import ConfigManager

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_policy(ctx: click.Context) -> RetryPolicyConfig:
    verbose = ctx.obj.get("verbose", False)
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path")).get_policy()
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)


def _format_seconds(value: Optional[timedelta]) -> str:
    if value is None:
        return "unset"
    return f"{value.total_seconds():g}s"


def describe_policy(policy: RetryPolicyConfig) -> List[str]:
    """Human readable summary of a policy"""
    lines = [f"Delay mode: {policy.delay_mode.value}"]
    if policy.delay_min is not None:
        lines.append(f"Delay range: {_format_seconds(policy.delay_min)} - {_format_seconds(policy.delay_max)}")
    elif policy.max_delay is not None:
        lines.append(
            f"Backoff: {_format_seconds(policy.delay)} up to {_format_seconds(policy.max_delay)} "
            f"(factor {policy.delay_factor:g})"
        )
    else:
        lines.append(f"Delay: {_format_seconds(policy.delay)}")
    if policy.jitter is not None:
        lines.append(f"Jitter: {_format_seconds(policy.jitter)}")
    elif policy.jitter_factor is not None:
        lines.append(f"Jitter factor: {policy.jitter_factor:g}")
    max_attempts = "unlimited" if policy.max_attempts == -1 else str(policy.max_attempts)
    lines.append(f"Max attempts: {max_attempts}")
    lines.append(f"Max duration: {_format_seconds(policy.max_duration)}")
    lines.append(f"Abort conditions: {len(policy.abort_conditions)}")
    lines.append(f"Allows retries: {'yes' if policy.allows_retries() else 'no'}")
    return lines


def simulate_failures(
    policy: RetryPolicyConfig,
    failures: int,
    attempt_time: float = 0.0,
    seed: Optional[int] = None,
) -> List[Verdict]:
    """Verdicts for a run of failing attempts, stopping at the first terminal verdict

    Elapsed time advances by ``attempt_time`` per attempt plus every scheduled delay.
    """
    rng = random.Random(seed)
    engine = RetryDecisionEngine(random_factory=lambda: rng)
    history = ExecutionAttemptHistory()
    elapsed = timedelta(0)
    verdicts = []
    for _ in range(failures):
        elapsed += timedelta(seconds=attempt_time)
        outcome = AttemptOutcome.failed(RuntimeError("simulated failure"))
        history.record(outcome, elapsed)
        verdict = engine.evaluate(policy, history, outcome)
        verdicts.append(verdict)
        if verdict.is_complete:
            break
        history.record_delay(verdict.delay)
        elapsed += verdict.delay
    return verdicts


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .retry-policy.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """recourse - retry policy validation and preview"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.pass_context
def validate(ctx):
    """Validate the retry policy configuration and print a summary."""
    policy = _load_policy(ctx)
    for line in describe_policy(policy):
        click.echo(line)
    click.echo("\nConfiguration is valid")


@cli.command()
@click.option("--failures", type=click.IntRange(min=1), default=5, show_default=True, help="Failing attempts to simulate")
@click.option(
    "--attempt-time",
    type=click.FloatRange(min=0.0),
    default=0.0,
    show_default=True,
    help="Seconds each simulated attempt takes",
)
@click.option("--seed", type=int, default=None, help="Seed for random delays and jitter")
@click.pass_context
def simulate(ctx, failures: int, attempt_time: float, seed: Optional[int]):
    """Preview verdicts and delays for a run of failing attempts."""
    policy = _load_policy(ctx)
    verdicts = simulate_failures(policy, failures, attempt_time=attempt_time, seed=seed)

    click.echo("=" * 40)
    for attempt_number, verdict in enumerate(verdicts, start=1):
        if verdict.should_retry:
            click.echo(f"Attempt {attempt_number}: retry in {verdict.delay.total_seconds():.3f}s")
        else:
            click.echo(f"Attempt {attempt_number}: {verdict.kind.value}")
    click.echo("=" * 40)
    if verdicts and verdicts[-1].should_retry:
        click.echo(f"Still retrying after {len(verdicts)} simulated failures")


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()

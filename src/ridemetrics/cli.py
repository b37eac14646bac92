"""CLI for the ridemetrics telemetry and analytics engine."""

import json

import click

from ridemetrics.errors import RideMetricsError


def _load_json(path: str) -> dict:
    with open(path) as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise click.ClickException(f"{path}: expected a JSON object")
    return payload


def _write_json(payload: dict, output: str) -> None:
    with open(output, "w") as f:
        f.write(json.dumps(payload, indent=2))


@click.group()
@click.option("--log-level", default=None, help="Log level (default: $RIDEMETRICS_LOG_LEVEL or INFO).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True),
              help="TOML config file (or a pyproject.toml with [tool.ridemetrics]).")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, config_path: str | None) -> None:
    """Ride metrics and admin analytics."""
    from ridemetrics.config import DEFAULT_CONFIG, load_config
    from ridemetrics.log import setup_logging

    setup_logging(log_level)
    try:
        ctx.obj = load_config(config_path) if config_path else DEFAULT_CONFIG
    except RideMetricsError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command("definitions")
@click.pass_obj
def definitions_cmd(config) -> None:
    """List the registered metric modules."""
    from ridemetrics.metrics.registry import build_registry, list_metric_definitions

    for definition in list_metric_definitions(build_registry(config)):
        units = f" [{definition.units}]" if definition.units else ""
        click.echo(f"{definition.key:<26} v{definition.version}  {definition.name}{units}")


@main.command("compute")
@click.argument("file", type=click.Path(exists=True))
@click.option("--metric", "-m", "metrics", multiple=True, help="Metric key to run (repeatable; default all).")
@click.option("--workers", "-w", default=1, help="Compute modules on this many threads.")
@click.option("--output", "-o", default=None, help="Write results JSON to file.")
@click.pass_obj
def compute_cmd(config, file: str, metrics: tuple[str, ...], workers: int, output: str | None) -> None:
    """Run metric modules on an activity JSON file."""
    from ridemetrics.metrics.registry import build_registry
    from ridemetrics.metrics.runner import run_metrics
    from ridemetrics.models import Activity

    try:
        activity = Activity.from_mapping(_load_json(file))
        outcomes = run_metrics(
            activity,
            list(metrics) or None,
            registry=build_registry(config),
            max_workers=workers,
        )
    except RideMetricsError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"\n{'=' * 60}")
    click.echo(f"  Activity {activity.id}: {len(activity.samples)} samples")
    click.echo(f"{'=' * 60}")
    for key, outcome in outcomes.items():
        if not outcome.ok:
            click.echo(f"  {key:<26} ERROR: {outcome.error}")
            continue
        summary = outcome.computation.summary
        shown = ", ".join(f"{k}={v}" for k, v in list(summary.items())[:3])
        click.echo(f"  {key:<26} {shown}")
    click.echo(f"{'=' * 60}")

    if output:
        _write_json({key: outcome.to_dict() for key, outcome in outcomes.items()}, output)
        click.echo(f"\nResults written to {output}")


@main.command("overview")
@click.argument("file", type=click.Path(exists=True))
@click.option("--now", default=None, help="Snapshot time (ISO-8601); default: batch 'now' or the clock.")
@click.option("--output", "-o", default=None, help="Write overview JSON to file.")
@click.pass_obj
def overview_cmd(config, file: str, now: str | None, output: str | None) -> None:
    """Build the admin analytics overview from a JSON record batch."""
    from ridemetrics.analytics.overview import AnalyticsInputs, build_overview, overview_to_json
    from ridemetrics.models import parse_timestamp

    try:
        inputs = AnalyticsInputs.from_mapping(_load_json(file))
        snapshot = build_overview(
            inputs,
            now=parse_timestamp(now) if now else None,
            config=config,
        )
    except RideMetricsError as exc:
        raise click.ClickException(str(exc)) from exc

    if output:
        _write_json(snapshot, output)
        click.echo(f"Overview written to {output}")
    else:
        click.echo(overview_to_json(snapshot))

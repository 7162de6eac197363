#!/usr/bin/env python3
"""
cli.py

Command-line interface: record spans from a live Python program or a
call-graph profile, and browse the stored traces as flame graphs.
"""
import logging
import os
import runpy
import sys
from datetime import datetime

import click
from rich import print
from rich.console import Console
from rich.table import Table

from stack_to_trace.config import TracerConfig, data_home
from stack_to_trace.differ import convert_samples_to_events
from stack_to_trace.engine import StackSamplingTracer
from stack_to_trace.errors import ConfigError, InvalidProfileError, SpanExportError
from stack_to_trace.exporters import speedscope, view_flame
from stack_to_trace.exporters.sqlite import SQLiteSpanExporter, list_traces
from stack_to_trace.plugins.upload_plugin import plugin as upload_plugin
from stack_to_trace.profile import load_profile, reconstruct


def _load(path):
    try:
        return load_profile(path)
    except InvalidProfileError as exc:
        raise click.ClickException(str(exc))


def _config(service, **overrides):
    try:
        return TracerConfig.from_env(service, **overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc))


@click.group()
@click.option("-v", "--verbose", count=True, help="Log more (repeat for debug output)")
def main(verbose):
    """Reconstruct span trees from sampled call stacks."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument("profile_path", type=click.Path(exists=True, dir_okay=False))
def events(profile_path):
    """Print the START/END events inferred from a call-graph profile."""
    try:
        samples = reconstruct(_load(profile_path))
    except InvalidProfileError as exc:
        raise click.ClickException(str(exc))
    trace_events = convert_samples_to_events(samples)
    click.echo(f"Generated {len(trace_events)} events from {len(samples)} samples:\n")
    for event in trace_events:
        ms = event.timestamp / 1_000_000
        click.echo(f"{event.kind.value:<5} @ {ms:>14.3f} - {'  ' * event.depth}{event.name}")


@main.command()
@click.argument("profile_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--db", "db_path", default=None, help="SQLite database to write spans to")
@click.option("--service", default="profile", show_default=True, help="Service name for the default database location")
def replay(profile_path, db_path, service):
    """Reconstruct spans from a call-graph profile and store them."""
    profile = _load(profile_path)
    overrides = {"db_path": db_path} if db_path else {}
    config = _config(service, **overrides)
    exporter = SQLiteSpanExporter(config.resolved_db_path)
    tracer = StackSamplingTracer(config, [exporter])
    try:
        tracer.replay_profile(profile)
    except InvalidProfileError as exc:
        raise click.ClickException(str(exc))
    except SpanExportError as exc:
        click.echo(f"Warning: {exc}", err=True)
    finally:
        tracer.shutdown()
    # one sample per profile tick, whether or not every span was exported
    click.echo(
        f"Replayed {len(profile.samples)} samples into {exporter.exported} spans; "
        f"trace {exporter.trace_id} in {exporter.db_file}"
    )


@main.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("--interval", type=click.IntRange(min=1), default=None, help="Sampling interval in milliseconds")
@click.option("--db", "db_path", default=None, help="SQLite database to write spans to")
@click.option("--service", default=None, help="Service name (defaults to the script name)")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.argument("script_args", nargs=-1, type=click.UNPROCESSED)
def run(interval, db_path, service, script, script_args):
    """Run a Python script under the live stack sampler."""
    service = service or os.path.splitext(os.path.basename(script))[0]
    overrides = {}
    if interval is not None:
        overrides["sampling_interval_ms"] = interval
    if db_path:
        overrides["db_path"] = db_path
    config = _config(service, **overrides)
    exporter = SQLiteSpanExporter(config.resolved_db_path)
    tracer = StackSamplingTracer(config, [exporter])

    exit_code = 0
    saved_argv = sys.argv
    sys.argv = [script, *script_args]
    tracer.start()
    try:
        runpy.run_path(script, run_name="__main__")
    except SystemExit as exc:
        exit_code = exc.code if isinstance(exc.code, int) else (0 if exc.code is None else 1)
    finally:
        sys.argv = saved_argv
        try:
            tracer.shutdown()
        except SpanExportError as exc:
            click.echo(f"Warning: {exc}", err=True)
    click.echo(
        f"Recorded {exporter.exported} spans; trace {exporter.trace_id} in {exporter.db_file}",
        err=True,
    )
    if exit_code:
        raise SystemExit(exit_code)


def _find_databases():
    base_dir = data_home()
    if not os.path.isdir(base_dir):
        return []
    dbs = []
    for service in sorted(os.listdir(base_dir)):
        db_path = os.path.join(base_dir, service, "telemetry.db")
        if os.path.isfile(db_path):
            dbs.append((service, db_path))
    return dbs


@main.command()
@click.option("--db", "db_path", default=None, type=click.Path(exists=True, dir_okay=False), help="SQLite span database")
@click.option("--trace", "trace_id", default=None, help="Trace ID to render")
@click.option("--min-percent", default=0.0, type=float, help="Hide frames below this share of the trace")
def view(db_path, trace_id, min_percent):
    """Browse stored traces and render one as a flame tree."""
    if db_path is None:
        dbs = _find_databases()
        if not dbs:
            click.echo("No telemetry databases found.", err=True)
            raise SystemExit(1)
        click.echo("Available databases:")
        for idx, (service, path) in enumerate(dbs, start=1):
            click.echo(f"  [{idx}] {service} ({path})")
        db_choice = click.prompt("Select database", type=click.IntRange(1, len(dbs)))
        _, db_path = dbs[db_choice - 1]

    if trace_id is None:
        traces = list_traces(db_path)[:10]
        if not traces:
            click.echo("No traces found in the selected database.", err=True)
            raise SystemExit(1)
        table = Table("#", "trace", "spans", "started")
        for idx, (tid, count, ts) in enumerate(traces, start=1):
            table.add_row(str(idx), tid, str(count), datetime.fromtimestamp(ts / 1_000_000).isoformat())
        Console().print(table)
        trace_choice = click.prompt("Select trace", type=click.IntRange(1, len(traces)))
        trace_id = traces[trace_choice - 1][0]

    spans = speedscope.load_spans(db_path, trace_id)
    if not spans:
        click.echo(f"No spans found for trace {trace_id!r}", err=True)
        raise SystemExit(1)
    print(view_flame.flame_tree(speedscope.folded_lines(spans), title=trace_id, min_percent=min_percent))


upload_plugin.register(main)


if __name__ == "__main__":
    main()

"""Elastic Cluster Operator CLI (eco).

One-shot commands around the reconciliation engine, for local use and CI.

Usage:
    eco validate cluster.yaml     # Validate a spec offline
    eco plan cluster.yaml         # Show changes against the recorded state
    eco apply cluster.yaml        # Run one reconciliation cycle
    eco read cluster.yaml         # Refresh and print the observed cluster
    eco destroy cluster.yaml      # Release the recorded cluster
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import click

from .config import Config, ConfigurationError
from .diff import plan_changes
from .http_client import ControlPlaneClient
from .models import ClusterSpec
from .operator import ClusterOperator
from .reconciler import ClusterReconciler, ReconcileResult
from .spec_loader import SpecLoadError, load_spec
from .state_store import StateStore, StateStoreError

DEFAULT_STATE_FILE = ".eco-state.json"


def _load(spec_file: str) -> tuple[Path, ClusterSpec]:
    path = Path(spec_file)
    try:
        return path, load_spec(path)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def _build_config(ctx: click.Context, spec_file: str) -> Config:
    params = ctx.find_root().params
    try:
        return Config(
            api_url=params["api_url"] or "",
            api_token=params["token"] or "",
            spec_file=Path(spec_file),
            state_file=Path(params["state_file"]),
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _run_with_operator(
    config: Config, action: Callable[[ClusterOperator], Awaitable[ReconcileResult]]
) -> ReconcileResult:
    async def run() -> ReconcileResult:
        async with ControlPlaneClient.from_config(config) as api:
            return await action(ClusterOperator(config, api))

    try:
        return asyncio.run(run())
    except (SpecLoadError, StateStoreError) as e:
        raise click.ClickException(str(e)) from e


def _report(result: ReconcileResult) -> None:
    for step in result.steps_applied:
        click.echo(f"  applied: {step}")
    for diagnostic in result.diagnostics.warnings:
        click.secho(f"  {diagnostic}", fg="yellow")
    if result.error is not None:
        raise click.ClickException(f"{result.phase} failed: {result.error}")
    click.secho(
        f"{result.phase} completed in {result.duration_seconds:.1f}s "
        f"(cluster id: {result.cluster_id or 'none'})",
        fg="green",
    )


# =============================================================================
# CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="eco")
@click.option(
    "--api-url", envvar="CONTROL_PLANE_URL", default=None, help="Control plane base URL"
)
@click.option("--token", envvar="CONTROL_PLANE_TOKEN", default=None, help="Control plane token")
@click.option(
    "--state-file",
    envvar="STATE_FILE",
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="Where the observed cluster state is recorded",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def cli(api_url: str | None, token: str | None, state_file: str, verbose: bool) -> None:
    """Elastic Cluster Operator CLI (eco).

    \b
    Quick Start:
        eco validate cluster.yaml
        eco plan cluster.yaml
        eco apply cluster.yaml
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


# =============================================================================
# Offline Commands
# =============================================================================


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
def validate(spec_file: str) -> None:
    """Validate a cluster spec without contacting the control plane."""
    path, spec = _load(spec_file)
    click.secho(f"✓ {path} is valid (cluster: {spec.cluster_name})", fg="green")


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def plan(ctx: click.Context, spec_file: str) -> None:
    """Show the changes an apply would make against the recorded state."""
    _, spec = _load(spec_file)
    store = StateStore(Path(ctx.find_root().params["state_file"]))
    try:
        snapshot = store.load()
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e

    lines = plan_changes(snapshot.spec if snapshot else None, spec)
    if not lines:
        click.echo("No changes. The cluster matches the spec.")
        return
    for line in lines:
        color = {"+": "green", "-": "red"}.get(line[0], "yellow")
        click.secho(line, fg=color)
    click.echo(f"\n{len(lines)} change(s) planned.")


# =============================================================================
# Remote Commands
# =============================================================================


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def apply(ctx: click.Context, spec_file: str) -> None:
    """Run one reconciliation cycle: create or update the cluster."""
    config = _build_config(ctx, spec_file)
    click.echo(f"Applying {spec_file}...")
    _report(_run_with_operator(config, lambda op: op.reconcile_once()))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def read(ctx: click.Context, spec_file: str) -> None:
    """Refresh the recorded cluster and print its observed state as JSON."""
    config = _build_config(ctx, spec_file)
    _, spec = _load(spec_file)
    store = StateStore(config.state_file)
    try:
        snapshot = store.load()
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e
    if snapshot is None:
        raise click.ClickException(f"No cluster recorded in {config.state_file}")

    async def run() -> ReconcileResult:
        async with ControlPlaneClient.from_config(config) as api:
            reconciler = ClusterReconciler.from_config(api, config)
            return await reconciler.read(
                snapshot.cluster_id,
                spec,
                snapshot.warehouse_external_info,
                recorded=snapshot.spec,
            )

    result = asyncio.run(run())
    if result.error is not None:
        raise click.ClickException(f"read failed: {result.error}")
    try:
        store.save(result.snapshot)
    except StateStoreError as e:
        raise click.ClickException(str(e)) from e
    if result.snapshot is None:
        click.echo("Cluster no longer exists; state cleared.")
        return
    click.echo(json.dumps(result.snapshot.model_dump(mode="json"), indent=2))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def destroy(ctx: click.Context, spec_file: str, yes: bool) -> None:
    """Release the recorded cluster and all of its warehouses."""
    config = _build_config(ctx, spec_file)
    if not yes:
        click.confirm("This releases the cluster and all of its data. Continue?", abort=True)
    _report(_run_with_operator(config, lambda op: op.destroy()))


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()

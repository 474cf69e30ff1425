"""
Human-readable output formatting.

Centralizes all CLI output formatting while keeping CLI commands thin and
focused.
"""
from __future__ import annotations

import typer

from ..models import PushPlan, PushResult


def print_push_summary(result: PushResult, verbose: bool = False) -> None:
    """
    Print the outcome of a push.

    Args:
        result: Push result
        verbose: Also list which blobs were uploaded or skipped
    """
    typer.echo(f"Pushed: {result.reference}")
    typer.echo(f"Digest: {result.manifest_digest}")

    if verbose:
        for digest in result.uploaded:
            typer.echo(f"  uploaded {digest}")
        for digest in result.skipped:
            typer.echo(f"  skipped  {digest} (already present)")


def print_push_plan(plan: PushPlan, verbose: bool = False) -> None:
    """Print what a push would send (dry run)."""
    typer.echo("DRY RUN - nothing was pushed")
    typer.echo(f"Reference: {plan.reference}")
    typer.echo(f"Chart:  {plan.chart_blob.digest} ({_format_bytes(plan.chart_blob.size)})")
    typer.echo(f"Config: {plan.config_blob.digest} ({_format_bytes(plan.config_blob.size)})")

    if verbose:
        typer.echo("Manifest:")
        typer.echo(f"  {plan.manifest_bytes.decode('utf-8')}")


def print_inspect_summary(result, verbose: bool = False) -> None:
    """
    Print chart metadata and blob details.

    Args:
        result: InspectResult from Operations.inspect()
        verbose: Also print the config blob payload
    """
    metadata = result.metadata
    typer.echo(f"Chart: {metadata.name}")
    typer.echo(f"Version: {metadata.version}")
    if metadata.description:
        typer.echo(f"Description: {metadata.description}")
    typer.echo(f"Chart blob:  {result.chart_blob.digest} ({_format_bytes(result.chart_blob.size)})")
    typer.echo(f"Config blob: {result.config_blob.digest} ({_format_bytes(result.config_blob.size)})")

    if verbose:
        typer.echo("Config:")
        typer.echo(f"  {result.config_blob.content.decode('utf-8')}")


def _format_bytes(size: int) -> str:
    """Format byte size in human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != 'B' else f"{size} {unit}"
        size /= 1024
    return f"{size:.1f} TB"

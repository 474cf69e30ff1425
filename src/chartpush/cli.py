"""
chartpush CLI

Implements 2 CLI verbs with Operations facade integration:
- push: Push a packaged Helm chart to an OCI registry
- inspect: Show chart metadata and blob digests without contacting a registry
"""
from __future__ import annotations

import logging
import typer
from typing import Optional

from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import print_inspect_summary, print_push_plan, print_push_summary
from .cli_context import CLIContext

app = typer.Typer(name="chartpush", help="Push Helm charts to OCI registries")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def push(
    chart_file: str = typer.Argument(..., help="Packaged chart (.tgz)"),
    repo: Optional[str] = typer.Option(None, "--repo", help="Repository URL, e.g. https://ghcr.io/myorg (default: $CHARTPUSH_REGISTRY_URL)"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Registry username"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Registry password or token"),
    name: Optional[str] = typer.Option(None, "--name", help="Override chart name from Chart.yaml"),
    version: Optional[str] = typer.Option(None, "--version", help="Override chart version from Chart.yaml"),
    parallel: bool = typer.Option(False, "--parallel", help="Upload config and chart blobs concurrently"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be pushed without actually pushing"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Push a packaged chart to an OCI registry."""
    _configure_logging(verbose)

    def _push() -> None:
        context = CLIContext.from_env(
            registry_url=repo,
            registry_user=username,
            registry_pass=password,
            parallel_uploads=parallel or None,
        )
        config = OpsConfig(parallel=context.settings.parallel_uploads, verbose=verbose)
        try:
            ops = Operations(config=config, client=context.client, settings=context.settings)
            result = ops.push(chart_file, name=name, version=version, dry_run=dry_run)
        finally:
            context.close()

        if dry_run:
            print_push_plan(result, verbose=verbose)
        else:
            print_push_summary(result, verbose=verbose)

    run_and_exit(_push)


@app.command()
def inspect(
    chart_file: str = typer.Argument(..., help="Packaged chart (.tgz)"),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output")
) -> None:
    """Show chart metadata and the digests a push would use."""
    _configure_logging(verbose)

    def _inspect() -> None:
        ops = Operations(config=OpsConfig(verbose=verbose))
        result = ops.inspect(chart_file)
        print_inspect_summary(result, verbose=verbose)

    run_and_exit(_inspect)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

# splitroute/cli.py

from __future__ import annotations

import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Set

import typer

from splitroute.config import DEFAULT_PREFIX_LEN, PREFIX_ENV, WORKERS_ENV, AggregationConfig
from splitroute.datasources.base import load_shards
from splitroute.datasources.har import HarSource
from splitroute.datasources.proc_net import PROC_NET, take_snapshot
from splitroute.datasources.resolver import HostResolver
from splitroute.engine import run_engine
from splitroute.errors import SplitRouteError
from splitroute.models import Outcome
from splitroute.processing.normalize import format_ipv4
from splitroute.render.directive import render_cidrs, render_json, render_wireguard
from splitroute.render.report import blocks_to_dataframe, save_report
from splitroute.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Build a split-tunnel VPN allow-list from recorded website traffic (HAR).")

log = get_logger(__name__)


class OutputFormat(str, Enum):
    wireguard = "wireguard"
    cidr = "cidr"
    json = "json"


def _fail(message: str, code: int = 2) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(code=code)


@app.command()
def routes(
        har_files: List[Path] = typer.Argument(
            ...,
            exists=True,
            dir_okay=False,
            help="One or more HAR dumps recorded while using the target website.",
        ),
        prefix_len: int = typer.Option(
            DEFAULT_PREFIX_LEN,
            "--prefix",
            "-p",
            envvar=PREFIX_ENV,
            help="Aggregation prefix length (0-32). Every address is widened to this block size.",
        ),
        output_format: OutputFormat = typer.Option(
            OutputFormat.wireguard,
            "--format",
            "-f",
            help="Output: wireguard (AllowedIPs line) | cidr (comma-joined list) | json",
        ),
        check_connections: bool = typer.Option(
            True,
            "--check-connections/--no-check-connections",
            help="Exclude blocks that contain the remote end of a currently active TCP/UDP socket.",
        ),
        proc_net: Path = typer.Option(
            PROC_NET,
            "--proc-net",
            help="Directory holding the kernel 'tcp' and 'udp' socket tables.",
        ),
        report: Optional[Path] = typer.Option(
            None,
            "--report",
            "-r",
            help="Write a per-block audit table (CSV, or JSON for a .json path).",
        ),
        workers: int = typer.Option(
            1,
            "--workers",
            "-w",
            envvar=WORKERS_ENV,
            help="Aggregate the per-file shards on this many threads.",
        ),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """
    Resolve every host seen in the HAR dumps and print the networks to tunnel.

    Example:

        splitroute routes site.har
        splitroute routes a.har b.har --prefix 24 --report blocks.csv
    """
    configure_logging(verbose)

    try:
        config = AggregationConfig(prefix_len=prefix_len, workers=workers)
    except SplitRouteError as e:
        raise typer.BadParameter(str(e))

    # 1) ingest, one shard per dump
    resolver = HostResolver()
    sources = [HarSource(path.expanduser().resolve(), resolver=resolver) for path in har_files]
    try:
        shards = load_shards(sources)
    except SplitRouteError as e:
        _fail(f"error: {e}")

    resolved: Dict[str, Set[int]] = {}
    unresolved: Dict[str, str] = {}
    for src in sources:
        resolved.update(src.resolved)
        unresolved.update(src.unresolved)
    log.info("Resolved %d hosts, %d unresolved", len(resolved), len(unresolved))
    for host, reason in sorted(unresolved.items()):
        log.info("Unresolved host %s: %s", host, reason)

    # 2) aggregate, snapshot, resolve, build
    snapshot_source = (lambda: take_snapshot(proc_net)) if check_connections else None
    try:
        result = run_engine(shards, snapshot=snapshot_source, config=config)
    except SplitRouteError as e:
        _fail(f"error: {e}")

    if report is not None:
        out = save_report(blocks_to_dataframe(result.blocks), report)
        typer.echo(f"Wrote block report to {out}", err=True)

    if output_format is OutputFormat.json:
        typer.echo(render_json(result, resolved=resolved, unresolved=unresolved))
    elif result.outcome is Outcome.ALLOWED:
        if output_format is OutputFormat.cidr:
            typer.echo(render_cidrs(result.allow_list))
        else:
            typer.echo(render_wireguard(result.allow_list))

    if result.outcome is Outcome.NO_ENDPOINTS:
        _fail("No endpoints observed; nothing to route.", code=1)
    if result.outcome is Outcome.ALL_EXCLUDED:
        _fail(
            f"All {len(result.blocks)} candidate blocks overlap active connections; "
            f"the allow-list is empty.",
            code=1,
        )


@app.command()
def snapshot(
        proc_net: Path = typer.Option(
            PROC_NET,
            "--proc-net",
            help="Directory holding the kernel 'tcp' and 'udp' socket tables.",
        ),
):
    """
    Print the active connections that would be checked for conflicts.
    """
    configure_logging()
    try:
        snap = take_snapshot(proc_net)
    except SplitRouteError as e:
        _fail(f"error: {e}")

    typer.echo(f"# {len(snap)} connections at {snap.taken_at.isoformat()}")
    for conn in sorted(snap):
        typer.echo(f"{conn.protocol.value}\t{format_ipv4(conn.address)}\t{conn.port}")


def main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Interrupted by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

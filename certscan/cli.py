"""Typer CLI — headless commands for certscan."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from certscan import __version__
from certscan.config import Settings
from certscan.errors import FatalSinkError

app = typer.Typer(
    name="certscan",
    help="certscan — TLS certificate discovery agent",
    no_args_is_help=True,
)
console = Console()

logger = logging.getLogger("certscan")


def _setup_logging(
    verbose: bool = False,
    config_level: str | None = None,
    logfile: str | None = None,
) -> None:
    if verbose:
        level = logging.DEBUG
    elif config_level:
        level = getattr(logging, config_level.upper(), logging.INFO)
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        filename=logfile or None,
        force=True,
    )


def _write_pidfile(path: str) -> None:
    Path(path).write_text(f"{os.getpid()}\n", encoding="utf-8")


async def _run_until_signalled(coro) -> None:
    """Run *coro*; SIGINT/SIGTERM cancel it and abandon in-flight probes."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, task.cancel)
    try:
        await coro
    except asyncio.CancelledError:
        logger.info("Shutting down gracefully...")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)


async def _scan(settings: Settings, daemon: bool) -> None:
    from certscan.core.scheduler import ScanScheduler
    from certscan.engine.runner import ScanRunner
    from certscan.reporting.webhook import WebhookSink
    from certscan.utils.identity import machine_id
    from certscan.utils.net import primary_ip

    async with WebhookSink(
        settings.webhook,
        machine_id=machine_id(settings.machine_id),
        primary_ip=primary_ip(),
    ) as sink:
        scheduler = ScanScheduler.from_settings(settings, sink)
        await ScanRunner(settings, scheduler).run(daemon=daemon)


@app.command()
def scan(
    config: str = typer.Option("config.yaml", "--config", "-c", help="Path to config YAML"),
    daemon: bool = typer.Option(False, "--daemon", "-d", help="Rescan every interval until stopped"),
    logfile: str | None = typer.Option(None, "--logfile", "-l", help="Append logs to this file"),
    pidfile: str | None = typer.Option(None, "--pidfile", "-p", help="Write the process id here"),
    verbose: bool = typer.Option(False, "-v", "--verbose"),
):
    """Scan every include_list target and report certificates to the webhook."""
    settings = Settings.load(config)
    _setup_logging(verbose or settings.debug, settings.log_level, logfile)
    if pidfile:
        _write_pidfile(pidfile)

    logger.info("Certificate discovery started")
    try:
        asyncio.run(_run_until_signalled(_scan(settings, daemon)))
    except FatalSinkError as e:
        logger.error("%s", e)
        if e.guidance:
            console.print(f"\n[bold red]{e.guidance}[/]\n")
        raise typer.Exit(1) from None


@app.command()
def probe(
    host: str = typer.Argument(help="IP address or hostname"),
    ports: str = typer.Option("443", help="Comma-separated ports"),
    protocol: str | None = typer.Option(None, help="Force protocol (http1, smtp, ...)"),
    config: str | None = typer.Option(None, "--config", "-c", help="Path to config YAML"),
    verbose: bool = typer.Option(False, "-v", "--verbose"),
):
    """Probe one host and print the certificates found, without reporting."""
    from certscan.core.scheduler import ScanScheduler
    from certscan.engine.targets import parse_ip
    from certscan.reporting.sink import CollectingSink
    from certscan.utils.certs import issuer_dn, parse_certificate, subject_cn
    from certscan.utils.net import resolve

    settings = Settings.load(config)
    _setup_logging(verbose or settings.debug, settings.log_level)
    try:
        port_list = sorted({int(p) for p in ports.split(",") if p.strip()})
    except ValueError:
        console.print(f"[red]Invalid ports: {ports}[/]")
        raise typer.Exit(1) from None

    async def _probe() -> CollectingSink:
        addrs = [host] if parse_ip(host) else await resolve(host)
        sink = CollectingSink()
        scheduler = ScanScheduler.from_settings(settings, sink)
        for ip in addrs:
            await scheduler.scan(ip, host, port_list, protocol)
        return sink

    sink = asyncio.run(_probe())
    if not sink.results:
        console.print(f"No certificates found on {host}")
        return

    table = Table(title=f"Certificates on {host}")
    table.add_column("Endpoint", style="bold")
    table.add_column("Handshake")
    table.add_column("#", justify="right")
    table.add_column("Subject CN")
    table.add_column("Issuer")
    for result in sink.results:
        for i, der in enumerate(result.certificates):
            cert = parse_certificate(der)
            table.add_row(
                f"{result.ip}:{result.port}" if i == 0 else "",
                (result.handshake_type or "starttls") if i == 0 else "",
                str(i),
                subject_cn(cert) if cert else "?",
                issuer_dn(cert) if cert else "?",
            )
    console.print(table)


@app.command()
def version():
    """Show version."""
    console.print(f"certscan v{__version__}")


if __name__ == "__main__":
    app()

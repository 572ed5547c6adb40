"""volm command-line interface.

Every ``serve`` option falls back to its VOLM_* environment variable, so the
same container image works with flags or with env-only configuration.
"""

from __future__ import annotations

import asyncio
import dataclasses

import click

from volm import __version__
from volm.config import load_config
from volm.errors import InvalidSelectorError
from volm.models.config import VolmConfig
from volm.query.selector import parse_selector


def apply_overrides(
    config: VolmConfig,
    *,
    ip: str | None = None,
    port: int | None = None,
    metrics_port: int | None = None,
    mode: str | None = None,
    namespace: str | None = None,
    selector: str | None = None,
    resync_interval: int | None = None,
) -> VolmConfig:
    """Return a copy of *config* with every non-None override applied."""
    api = dataclasses.replace(
        config.api,
        ip=ip if ip is not None else config.api.ip,
        port=port if port is not None else config.api.port,
        metrics_port=metrics_port if metrics_port is not None else config.api.metrics_port,
        mode=mode if mode is not None else config.api.mode,
    )
    if namespace is not None and not namespace.strip():
        raise ValueError("PVC namespace must not be empty")
    cluster = dataclasses.replace(
        config.cluster,
        namespace=namespace.strip() if namespace is not None else config.cluster.namespace,
        selector=parse_selector(selector) if selector is not None else config.cluster.selector,
    )
    watch = dataclasses.replace(
        config.watch,
        resync_interval=resync_interval if resync_interval is not None else config.watch.resync_interval,
    )
    return dataclasses.replace(config, api=api, cluster=cluster, watch=watch)


@click.group()
@click.version_option(__version__, prog_name="volm")
def cli() -> None:
    """volm: PersistentVolumeClaim usage API for Kubernetes."""


@cli.command()
@click.option("--ip", default=None, help="Server IP address to bind to.")
@click.option("--port", type=int, default=None, help="Server port.")
@click.option("--metrics-port", type=int, default=None, help="Metrics port.")
@click.option("--mode", type=click.Choice(["debug", "release"]), default=None, help="debug or release.")
@click.option("--pvc-namespace", "namespace", default=None, help="Namespace to mirror.")
@click.option("--pvc-selector", "selector", default=None, help="Label selector, e.g. team=a,tier=gold.")
@click.option("--resync-interval", type=click.IntRange(10, 3600), default=None, help="Seconds between resyncs.")
def serve(
    ip: str | None,
    port: int | None,
    metrics_port: int | None,
    mode: str | None,
    namespace: str | None,
    selector: str | None,
    resync_interval: int | None,
) -> None:
    """Run the API server and watch subscriptions."""
    from volm.app import main

    try:
        config = apply_overrides(
            load_config(),
            ip=ip,
            port=port,
            metrics_port=metrics_port,
            mode=mode,
            namespace=namespace,
            selector=selector,
            resync_interval=resync_interval,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    asyncio.run(main(config))


@cli.command("check-selector")
@click.argument("expression")
def check_selector(expression: str) -> None:
    """Parse a selector expression and print its requirements."""
    try:
        selector = parse_selector(expression)
    except InvalidSelectorError as exc:
        raise click.ClickException(str(exc)) from exc
    if selector.empty:
        click.echo("<match all>")
        return
    for key, value in selector.requirements:
        click.echo(f"{key}={value}")

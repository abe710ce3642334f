"""CLI entry point for eventfold."""

from __future__ import annotations

import json

import click

from .main import DEMOS


@click.group()
def main() -> None:
    """eventfold: in-process event-sourcing runtime."""


@main.command()
@click.argument("name", type=click.Choice(DEMOS))
@click.option("--config", default=None, help="Config file path")
@click.option("--log-level", default=None, help="Override observability.log_level")
@click.option("--console-trace", is_flag=True, help="Mirror trace entries to the log")
@click.option("--persist", is_flag=True, help="Restore and save state between runs")
@click.option("--trace", "trace", default=0, type=click.IntRange(min=0),
              help="Include the newest N trace entries")
def demo(
    name: str,
    config: str | None,
    log_level: str | None,
    console_trace: bool,
    persist: bool,
    trace: int,
) -> None:
    """Run a scripted example scenario and print its summary."""
    import asyncio

    from .main import run_demo

    overrides: dict = {}
    if log_level:
        overrides["observability"] = {"log_level": log_level}
    if console_trace:
        overrides["trace"] = {"console": True}

    summary = asyncio.run(
        run_demo(
            name, config_path=config, overrides=overrides,
            persist=persist, trace=trace,
        )
    )
    click.echo(json.dumps(summary, indent=2, sort_keys=True, default=str))


@main.command()
@click.option("--config", default=None, help="Config file path")
def stored(config: str | None) -> None:
    """List state snapshots in the persistence directory."""
    import asyncio
    from pathlib import Path

    from .core.config import load_settings
    from .infrastructure.state_store import JsonFileStateStore

    settings = load_settings(config_path=config)
    store = JsonFileStateStore(
        Path(settings.persistence.directory), prefix=settings.persistence.prefix,
    )
    keys = asyncio.run(store.list())
    if not keys:
        click.echo("No stored state found.")
        return
    for key in keys:
        click.echo(key)


if __name__ == "__main__":
    main()

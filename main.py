#!/usr/bin/env -S uv --quiet run --script
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "click",
#     "textual",
#     "rich",
#     "PyYAML",
# ]
# ///

import asyncio
import os
import sys
from dataclasses import replace

import click

from lazycontext.app import LazyContext
from lazycontext.config import AppConfig, load_config
from lazycontext.errors import LazyContextError
from lazycontext.git_service import GitService
from lazycontext.log_store import LogStore, setup_logging
from lazycontext.models import SyncAction
from lazycontext.registry import Registry


def run_headless_sync(config: AppConfig) -> int:
    setup_logging(level=config.log_level)
    registry = Registry(config.registry_path)
    try:
        data = registry.load()
    except LazyContextError as exc:
        click.echo(f"Failed to load registry: {exc}", err=True)
        return 1
    service = GitService(
        target_dir=config.target_dir,
        clone_depth=config.clone_depth,
        fetch_on_check=config.fetch_on_check,
        concurrency=config.sync_concurrency,
    )
    click.echo(
        f"Processing {len(data.repos)} repos (concurrency: {config.sync_concurrency})...\n"
    )
    report = asyncio.run(service.sync_all(data.repos))
    for name in report.succeeded:
        verb = "cloned" if report.actions.get(name) == SyncAction.CLONE else "pulled"
        click.echo(f"✓ {name} ({verb})")
    if report.failed:
        click.echo(f"\nFailed to process {len(report.failed)} repo(s):", err=True)
        for name, error in report.failed:
            click.echo(f"  ✗ {name}: {error}", err=True)
        return 1
    click.echo("\nDone!")
    return 0


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Read settings from this YAML file instead of the default location.",
)
@click.option(
    "--target-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="Directory holding the working copies.",
)
@click.option(
    "--registry",
    "registry_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Registry file listing the tracked repositories.",
)
@click.option(
    "--sync",
    "headless_sync",
    is_flag=True,
    help="Clone or pull every tracked repository without starting the dashboard.",
)
def main(
    config_path: str | None,
    target_dir: str | None,
    registry_path: str | None,
    headless_sync: bool,
) -> None:
    config = load_config(config_path)
    if target_dir:
        config = replace(config, target_dir=os.path.expanduser(target_dir))
    if registry_path:
        config = replace(config, registry_path=os.path.expanduser(registry_path))
    if headless_sync:
        sys.exit(run_headless_sync(config))
    store = LogStore(config.max_log_entries)
    setup_logging(store, config.log_level)
    app = LazyContext(config=config, log_store=store)
    app.run()


if __name__ == "__main__":
    main()

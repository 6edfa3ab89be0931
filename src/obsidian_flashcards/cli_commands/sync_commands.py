"""Sync and connectivity commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from ..exceptions import AnkiConnectError
from ..sync.liveness import LivenessProbe
from ..sync.orchestrator import SyncOrchestrator, SyncState
from .shared import (
    build_client,
    build_store,
    console,
    get_config_and_logger,
    vault_relative,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config.yaml", exists=True),
]
LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", help="Log level (DEBUG, INFO, WARN, ERROR)"),
]
VaultOption = Annotated[
    Path | None,
    typer.Option("--vault", help="Vault directory (overrides config)"),
]


def _print_line(line: str) -> None:
    console.print(line, markup=False, highlight=False, soft_wrap=True)


def register(app: typer.Typer) -> None:
    """Register sync commands on the given Typer app."""

    @app.command()
    def sync(
        file: Annotated[Path, typer.Argument(help="Note to sync (vault-relative)")],
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        vault: VaultOption = None,
    ) -> None:
        """Sync the flashcards of one note."""
        config, logger = get_config_and_logger(config_path, log_level, vault)
        path = vault_relative(file, config)
        logger.debug("sync_command_started", source_path=path)

        async def run() -> SyncState:
            async with build_client(config) as client:
                orchestrator = SyncOrchestrator(
                    config, client, build_store(config), report=_print_line
                )
                await orchestrator.sync_one_document(path)
                return orchestrator.state

        if asyncio.run(run()) is SyncState.FAILED:
            raise typer.Exit(code=1)

    @app.command(name="sync-tag")
    def sync_tag(
        tag: Annotated[
            str | None,
            typer.Option("--tag", help="Tag selecting notes (default: flashcards tag)"),
        ] = None,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        vault: VaultOption = None,
    ) -> None:
        """Sync every note carrying a tag."""
        config, _ = get_config_and_logger(config_path, log_level, vault)

        async def run() -> None:
            async with build_client(config) as client:
                orchestrator = SyncOrchestrator(
                    config, client, build_store(config), report=_print_line
                )
                await orchestrator.sync_by_tag(tag)

        asyncio.run(run())

    @app.command()
    def ping(
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
    ) -> None:
        """Check that AnkiConnect is reachable."""
        config, _ = get_config_and_logger(config_path, log_level)

        async def run() -> int | None:
            async with build_client(config) as client:
                try:
                    return await client.version()
                except AnkiConnectError as e:
                    console.print(f"[red]FAIL[/red] {e.message}")
                    return None

        version = asyncio.run(run())
        if version is None:
            raise typer.Exit(code=1)
        console.print(
            f"[green]PASS[/green] AnkiConnect v{version} at {config.anki_connect_url}"
        )

    @app.command()
    def status(
        watch: Annotated[
            bool,
            typer.Option("--watch", help="Keep pinging until interrupted"),
        ] = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
    ) -> None:
        """Show the Anki connectivity indicator."""
        config, _ = get_config_and_logger(config_path, log_level)

        def show(value: str) -> None:
            console.print(f"Status: {value or 'Anki unreachable'}", highlight=False)

        async def run() -> str:
            async with build_client(config) as client:
                probe = LivenessProbe(client, config.liveness_interval, on_status=show)
                if not watch:
                    return await probe.check()
                try:
                    await probe.start()
                finally:
                    await probe.stop()
                return probe.status

        try:
            result = asyncio.run(run())
        except KeyboardInterrupt:
            return
        if not result:
            raise typer.Exit(code=1)

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer
import uvicorn

from psqlledger.api import create_app
from psqlledger.config import get_settings
from psqlledger.database.pool import ClientPool
from psqlledger.errors import LedgerError
from psqlledger.infrastructure.db_factory import build_client_factory
from psqlledger.utils.logging import configure_logging
from psqlledger.version import full_version

app = typer.Typer(help="psqlledger account and transfer service.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"version={full_version()} backend={settings.db_backend} "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool={settings.max_threads} migrations={settings.migrations_path} port={settings.port}"
    )


@app.command()
def serve(
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Override HTTP port (default from settings).",
    ),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
) -> None:
    """
    Open the client pool and serve the HTTP API until interrupted.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_format == "json")
    uvicorn.run(
        create_app(settings=settings),
        host=host,
        port=port or settings.port,
        log_config=None,
    )


async def _migrate(migrations_path: str) -> list[int]:
    settings = get_settings()
    pool = await ClientPool.create(1, build_client_factory(settings))
    try:
        return await pool.initialize_schema(migrations_path)
    finally:
        await pool.close()


@app.command()
def migrate(
    path: Optional[str] = typer.Option(
        None,
        "--path",
        help="Migrations directory (default from settings).",
    ),
) -> None:
    """
    Apply pending schema migrations and exit.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_format == "json")
    migrations_path = path or settings.migrations_path
    try:
        applied = asyncio.run(_migrate(migrations_path))
    except LedgerError as exc:
        typer.echo(f"Migration failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if applied:
        typer.echo(f"Applied migrations: {', '.join(str(v) for v in applied)}")
    else:
        typer.echo("Schema already up to date.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

import typer
from pydantic import BaseModel, ValidationError

from failover_probe.config import CompareConfig, InitConfig, LoadConfig, get_settings
from failover_probe.errors import FailoverProbeError
from failover_probe.generator import run_load
from failover_probe.reconciler import run_compare
from failover_probe.reporter import print_json, print_result
from failover_probe.schema import init_schema
from failover_probe.utils.logging import configure_logging, get_logger

app = typer.Typer(
    help="Send stamps to PostgreSQL and find out which ones a failover lost.",
    no_args_is_help=True,
)
log = get_logger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)

EXIT_FAILURE = 1
EXIT_USAGE = 2


@dataclass(frozen=True)
class GlobalOptions:
    dsn: str
    store_path: Path


def _build_config(config_cls: Type[ConfigT], **overrides: Any) -> ConfigT:
    """Validate options before anything runs; invalid values exit with status 2."""
    try:
        return config_cls.from_settings(get_settings(), **overrides)  # type: ignore[attr-defined]
    except (ValidationError, ValueError) as exc:
        typer.echo(f"invalid {config_cls.__name__} options: {exc}", err=True)
        raise typer.Exit(code=EXIT_USAGE) from exc


def _fail(exc: Exception) -> typer.Exit:
    log.error(f"{exc}", extra={"error_type": type(exc).__name__})
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=EXIT_FAILURE)


@app.callback()
def main_options(
    ctx: typer.Context,
    db_url: Optional[str] = typer.Option(
        None,
        "--db-url",
        "-d",
        help="Connection string or URL to PostgreSQL (default from DATABASE_URL / DB_* settings).",
    ),
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        "-s",
        help="Path to the local file storing data sent to PostgreSQL.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON."),
) -> None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        typer.echo(f"invalid settings: {exc}", err=True)
        raise typer.Exit(code=EXIT_USAGE) from exc
    configure_logging(level=log_level or settings.log_level, json_logs=json_logs)
    ctx.obj = GlobalOptions(
        dsn=db_url or settings.dsn,
        store_path=store or settings.store_path,
    )


@app.command()
def info(ctx: typer.Context) -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    options: GlobalOptions = ctx.obj
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"store={options.store_path} timeout={settings.timeout} pause={settings.pause} "
        f"size={settings.payload_size}"
    )


@app.command("init")
def init_command(
    ctx: typer.Context,
    timeout: str = typer.Option("5s", "--timeout", "-t", help="Timeout when interacting with PostgreSQL."),
) -> None:
    """
    Initialize the schema of the application in the database.
    """
    options: GlobalOptions = ctx.obj
    config = _build_config(InitConfig, dsn=options.dsn, timeout=timeout)
    try:
        asyncio.run(init_schema(config))
    except FailoverProbeError as exc:
        raise _fail(exc) from exc


@app.command()
def load(
    ctx: typer.Context,
    timeout: Optional[str] = typer.Option(
        None, "--timeout", "-t", help="Timeout when interacting with PostgreSQL (e.g. 5s)."
    ),
    pause: Optional[str] = typer.Option(
        None, "--pause", "-p", help="Pause between transactions (e.g. 500ms)."
    ),
    truncate: bool = typer.Option(
        False, "--truncate", "-T", help="Truncate tables and files before sending data."
    ),
    size: Optional[int] = typer.Option(None, "--size", "-S", help="Payload size in bytes."),
) -> None:
    """
    Insert data into the database and save it locally to allow comparison.
    """
    options: GlobalOptions = ctx.obj
    config = _build_config(
        LoadConfig,
        dsn=options.dsn,
        store_path=options.store_path,
        timeout=timeout,
        pause=pause,
        truncate=truncate,
        payload_size=size,
    )
    try:
        summary = asyncio.run(run_load(config))
    except FailoverProbeError as exc:
        raise _fail(exc) from exc

    typer.echo(
        f"generated={summary.generated} inserted={summary.inserted} "
        f"failed={summary.failed} last_id={summary.last_id}"
    )


@app.command()
def compare(
    ctx: typer.Context,
    no_load: bool = typer.Option(
        False, "--no-load", "-n", help="Do not load local file to database."
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", "-t", help="Timeout for each database operation (default 30s)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """
    Compare the local store with the database.
    """
    options: GlobalOptions = ctx.obj
    config = _build_config(
        CompareConfig,
        dsn=options.dsn,
        store_path=options.store_path,
        no_load=no_load,
        timeout=timeout,
    )
    try:
        result = asyncio.run(run_compare(config))
    except FailoverProbeError as exc:
        raise _fail(exc) from exc

    if as_json:
        print_json(result)
    else:
        print_result(result)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

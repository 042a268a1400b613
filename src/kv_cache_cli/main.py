"""CLI entrypoint using typer."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Literal, TypeVar

import structlog
import typer
from rich.console import Console

from kv_cache_core.config.settings import Settings
from kv_cache_core.exceptions import CacheInputError, StoreFaultError
from kv_cache_core.models.entry import TtlState
from kv_cache_service.facade import CacheFacade
from kv_cache_service.factories import open_cache
from kv_cache_service.observability import (
    bind_operation_context,
    clear_operation_context,
    configure_logging,
    configure_tracing,
)

T = TypeVar("T")

EXIT_ABSENT = 1
EXIT_STORE_FAULT = 2
EXIT_INVALID_INPUT = 3

app = typer.Typer(
    name="kv-cache",
    help="JSON key-value cache with per-key TTL",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger()


@app.callback()
def main(
    ctx: typer.Context,
    backend: str | None = typer.Option(
        None, "--backend", help="Override the store backend: redis, disk, or db"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging"),
) -> None:
    """Operate on the configured key-value store."""
    ctx.obj = {"backend": backend, "verbose": verbose}


@app.command()
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
) -> None:
    """Print the value stored under KEY."""
    lookup = _execute(ctx, "get", lambda cache: cache.get(key))
    if not lookup.hit:
        err_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(code=EXIT_ABSENT)
    typer.echo(lookup.value)


@app.command()
def put(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
    value: str = typer.Argument(..., help="JSON value to store"),
    ttl: float | None = typer.Option(None, "--ttl", help="Time to live in seconds"),
    validate: bool = typer.Option(
        True, "--validate/--no-validate", help="Reject values that are not valid JSON"
    ),
) -> None:
    """Store VALUE under KEY, replacing any existing entry."""
    _check_json(value, validate)
    _execute(ctx, "put", lambda cache: cache.put(key, value, ttl))
    console.print("[green]Value stored successfully[/green]")


@app.command()
def update(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
    value: str = typer.Argument(..., help="New JSON value"),
    ttl: float | None = typer.Option(
        None, "--ttl", help="Replace the TTL (seconds); omit to keep the current one"
    ),
    validate: bool = typer.Option(
        True, "--validate/--no-validate", help="Reject values that are not valid JSON"
    ),
) -> None:
    """Overwrite an existing KEY; fails if it does not exist."""
    _check_json(value, validate)
    updated = _execute(ctx, "update", lambda cache: cache.update(key, value, ttl))
    if not updated:
        err_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(code=EXIT_ABSENT)
    console.print("[green]Value updated successfully[/green]")


@app.command()
def delete(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
) -> None:
    """Delete KEY."""
    deleted = _execute(ctx, "delete", lambda cache: cache.delete(key))
    if not deleted:
        err_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(code=EXIT_ABSENT)
    console.print("[green]Value deleted successfully[/green]")


@app.command()
def expire(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
    ttl: float = typer.Argument(..., help="New time to live in seconds"),
) -> None:
    """Set a new TTL on KEY without changing its value."""
    updated = _execute(ctx, "expire", lambda cache: cache.update_ttl(key, ttl))
    if not updated:
        err_console.print(f"[yellow]Not found:[/yellow] {key}")
        raise typer.Exit(code=EXIT_ABSENT)
    console.print("[green]TTL updated successfully[/green]")


@app.command()
def exists(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
) -> None:
    """Print whether KEY exists."""
    found = _execute(ctx, "exists", lambda cache: cache.exists(key))
    typer.echo(json.dumps({"exists": found}))


@app.command()
def ttl(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key"),
) -> None:
    """Print the remaining TTL of KEY."""
    reading = _execute(ctx, "ttl", lambda cache: cache.get_ttl(key))
    payload: dict[str, object] = {"exists": reading.exists, "state": reading.state.value}
    if reading.state is TtlState.EXPIRING:
        payload["ttl"] = reading.seconds
    typer.echo(json.dumps(payload))


@app.command()
def keys(
    ctx: typer.Context,
    pattern: str = typer.Option("*", "--pattern", help="Glob-style key pattern"),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Give up after this many seconds"
    ),
) -> None:
    """List keys matching PATTERN."""

    async def _list(cache: CacheFacade) -> int:
        count = 0
        async with asyncio.timeout(timeout):
            async for found in cache.list_all_keys(pattern):
                typer.echo(found)
                count += 1
        return count

    try:
        count = _execute(ctx, "keys", _list)
    except TimeoutError:
        err_console.print(f"[red]Error:[/red] key listing timed out after {timeout}s")
        raise typer.Exit(code=EXIT_STORE_FAULT) from None
    logger.debug("keys_listed", count=count, pattern=pattern)


@app.command()
def ping(ctx: typer.Context) -> None:
    """Check that the store answers."""
    _execute(ctx, "ping", lambda cache: cache.ping())
    console.print("[green]PONG[/green]")


@app.command()
def version() -> None:
    """Show version."""
    console.print("kv-cache-facade v0.1.0")


def _load_settings(ctx: typer.Context) -> Settings:
    """Build settings and apply global CLI overrides."""
    options = ctx.obj or {}
    settings = Settings()
    if options.get("backend"):
        settings.store_backend = _parse_backend(options["backend"])
    if options.get("verbose"):
        settings.log_level = "DEBUG"
    return settings


def _parse_backend(name: str) -> Literal["redis", "disk", "db"]:
    if name == "redis":
        return "redis"
    if name == "disk":
        return "disk"
    if name == "db":
        return "db"
    err_console.print(f"[red]Error:[/red] unknown backend {name!r} (use redis, disk, or db)")
    raise typer.Exit(code=EXIT_INVALID_INPUT)


def _check_json(value: str, validate: bool) -> None:
    """Exit with EXIT_INVALID_INPUT if `value` must be JSON and is not."""
    if not validate:
        return
    try:
        json.loads(value)
    except json.JSONDecodeError as exc:
        err_console.print(f"[red]Error:[/red] value is not valid JSON: {exc}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc


def _execute(
    ctx: typer.Context,
    command: str,
    operation: Callable[[CacheFacade], Awaitable[T]],
) -> T:
    """Run one facade operation against a freshly opened cache."""
    settings = _load_settings(ctx)
    configure_logging(settings)
    configure_tracing(settings)
    bind_operation_context(command=command, backend=settings.store_backend)
    try:
        return asyncio.run(_with_cache(settings, operation))
    except CacheInputError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc
    except StoreFaultError as exc:
        err_console.print(
            f"[red]Error:[/red] {settings.store_backend} store unavailable: {exc}",
        )
        raise typer.Exit(code=EXIT_STORE_FAULT) from exc
    finally:
        clear_operation_context()


async def _with_cache(
    settings: Settings,
    operation: Callable[[CacheFacade], Awaitable[T]],
) -> T:
    async with open_cache(settings) as cache:
        return await operation(cache)


if __name__ == "__main__":
    app()

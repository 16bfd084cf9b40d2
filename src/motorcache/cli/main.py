"""Main CLI entry point for motorcache.

Provides command-line inspection and maintenance of the on-disk cache.
"""

import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from motorcache.cache import CacheConfig, PersistentCache, get_global_config
from motorcache.cache.validation import get_ttl_remaining
from motorcache.fetch import CachingFetcher, FetchError
from motorcache.storage import FileStorage
from motorcache.utils import format_duration, format_size, format_timestamp

# Global console for Rich output
console = Console()


def build_cache(cache_dir: Optional[str] = None) -> PersistentCache:
    """Open the file-backed cache.

    Priority for the directory:
    1. Explicit --cache-dir/-C flag
    2. MOTORCACHE_DIR environment variable or config file
    3. ~/.motorcache

    Args:
        cache_dir: Directory from CLI context

    Returns:
        PersistentCache over a FileStorage
    """
    config: CacheConfig = get_global_config()
    if cache_dir:
        config = dataclasses.replace(config, storage_dir=Path(cache_dir))
    storage = FileStorage(config.storage_dir, max_bytes=config.max_storage_bytes)
    return PersistentCache(storage, config)


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(file_okay=False),
    help="Cache directory (default: MOTORCACHE_DIR env var or ~/.motorcache)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log cache activity")
@click.pass_context
def cli(ctx, cache_dir, verbose):
    """motorcache CLI - Inspect and maintain the API response cache.

    Use --cache-dir/-C to pick the cache directory, or set MOTORCACHE_DIR.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show entry counts, size and age range of the cache.

    Example:
        motorcache stats
    """
    cache = build_cache(ctx.obj.get("cache_dir"))
    snapshot = cache.stats()

    console.print("\n[bold cyan]Cache statistics[/bold cyan]")
    console.print(f"  Items: {snapshot['total_items']}")
    console.print(f"  Expired: {snapshot['expired_items']}")
    console.print(f"  Size: {format_size(snapshot['total_size_bytes'])}")
    if snapshot["oldest_entry"]:
        oldest = snapshot["oldest_entry"]
        newest = snapshot["newest_entry"]
        console.print(
            f"  Oldest: {oldest['key']} ({format_timestamp(oldest['stored_at'])})"
        )
        console.print(
            f"  Newest: {newest['key']} ({format_timestamp(newest['stored_at'])})"
        )


@cli.command("list")
@click.pass_context
def list_entries(ctx):
    """List cached entries, oldest first.

    Example:
        motorcache list
    """
    cache = build_cache(ctx.obj.get("cache_dir"))
    entries = cache.entries()

    if not entries:
        console.print("[yellow]Cache is empty[/yellow]")
        return

    now = cache.now()
    table = Table(title=f"Cache entries ({len(entries)})")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Stored", style="blue")
    table.add_column("Expires in", justify="right", style="green")
    table.add_column("Size", justify="right", style="white")

    for entry in entries:
        remaining = get_ttl_remaining(entry["expires_at"], now)
        if not remaining:
            expires = "[red]expired[/red]"
        else:
            expires = format_duration(remaining)
        table.add_row(
            entry["key"],
            format_timestamp(entry["stored_at"]),
            expires,
            format_size(entry["size_bytes"]),
        )

    console.print(table)


@cli.command("get")
@click.argument("key")
@click.pass_context
def get(ctx, key):
    """Print the cached payload for KEY.

    Reading an expired or corrupt entry removes it.

    Example:
        motorcache get reviews_summary_5
    """
    cache = build_cache(ctx.obj.get("cache_dir"))
    result = cache.lookup(key)
    if not result.hit:
        console.print(f"[yellow]No cached value for '{key}' ({result.reason})[/yellow]")
        sys.exit(1)
    console.print_json(json.dumps(result.value))


@cli.command("remove")
@click.argument("key")
@click.pass_context
def remove(ctx, key):
    """Remove KEY from the cache."""
    cache = build_cache(ctx.obj.get("cache_dir"))
    cache.remove(key)
    console.print(f"[green]✓[/green] Removed '{key}'")


@cli.command("clear-expired")
@click.pass_context
def clear_expired(ctx):
    """Delete entries whose TTL has passed."""
    cache = build_cache(ctx.obj.get("cache_dir"))
    removed = cache.clear_expired()
    console.print(f"[green]✓[/green] Cleared {removed} expired entries")


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def clear(ctx, yes):
    """Delete every cached entry."""
    if not yes:
        click.confirm("Delete all cached entries?", abort=True)
    cache = build_cache(ctx.obj.get("cache_dir"))
    removed = cache.clear_all()
    console.print(f"[green]✓[/green] Cleared {removed} entries")


@cli.command("fetch")
@click.argument("url")
@click.argument("key")
@click.option("--header", "-H", multiple=True, help="Extra header as 'Name: value'")
@click.pass_context
def fetch(ctx, url, key, header):
    """Fetch URL through the cache under KEY and print the payload.

    Example:
        motorcache fetch http://localhost:3000/api/news?limit=5 news_5
    """
    headers = {}
    for item in header:
        name, sep, value = item.partition(":")
        if not sep:
            raise click.BadParameter(f"Expected 'Name: value', got {item!r}")
        headers[name.strip()] = value.strip()

    cache = build_cache(ctx.obj.get("cache_dir"))

    async def run():
        async with CachingFetcher(cache) as fetcher:
            return await fetcher.fetch(url, key, {"headers": headers})

    try:
        payload = asyncio.run(run())
    except FetchError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    console.print_json(json.dumps(payload))


if __name__ == "__main__":
    cli()

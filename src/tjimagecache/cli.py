"""Typer-based CLI entry point."""

from __future__ import annotations

import enum
import functools
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from dateutil import parser as date_parser
from rich import print

from .config import FETCH_TIMEOUT_SEC
from .domain.models import Depth
from .errors import ImageCacheError, SettingsError
from .infrastructure.services.delivery import create_delivery_thread
from .infrastructure.services.disk_image_cache import default_root_path
from .infrastructure.services.image_cache_service import ImageCacheService
from .settings.manager import SettingsManager
from .utils.hashutils import hash_url

app = typer.Typer(help="URL-keyed image cache with memory, disk and network tiers")

_state: dict[str, Any] = {"root": None}


class DepthChoice(str, enum.Enum):
    memory = "memory"
    disk = "disk"
    internet = "internet"

    def to_depth(self) -> Depth:
        return Depth[self.name.upper()]


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SettingsError as exc:
            typer.echo(f"Settings error: {exc}", err=True)
            raise typer.Exit(2) from exc
        except ImageCacheError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


def _resolve_root() -> Path:
    if _state["root"] is not None:
        return _state["root"]
    manager = SettingsManager()
    manager.load()
    stored = manager.get("root_path")
    return Path(stored) if stored else default_root_path()


def _open_cache(timeout: float = FETCH_TIMEOUT_SEC) -> ImageCacheService:
    return ImageCacheService(
        _resolve_root(),
        dispatcher=create_delivery_thread(),
        fetch_timeout=timeout,
    )


def _parse_date(value: str) -> datetime:
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise typer.BadParameter(f"cannot parse date {value!r}") from exc


class _WaitingDelegate:
    """Delegate that lets the CLI block until a lookup finishes."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.image: Any = None

    def did_get_image(self, image: Any, url: str) -> None:
        self.image = image
        self.done.set()

    def did_fail_to_get_image(self, url: str) -> None:
        self.done.set()


@app.callback()
def main(
    root: Optional[Path] = typer.Option(None, "--root", help="Cache root directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log cache activity"),
) -> None:
    _state["root"] = root.expanduser() if root is not None else None
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")


@app.command("hash")
def hash_command(url: str) -> None:
    """Print the on-disk file name for URL."""

    print(hash_url(url))


@app.command()
@_handle_errors
def fetch(
    url: str,
    depth: DepthChoice = typer.Option(DepthChoice.internet, help="Deepest tier to consult"),
    timeout: float = typer.Option(FETCH_TIMEOUT_SEC, help="HTTP timeout in seconds"),
) -> None:
    """Load URL through the cache and report where it came from."""

    cache = _open_cache(timeout)
    try:
        before = cache.depth_for_image_at_url(url)
        delegate = _WaitingDelegate()
        image = cache.image_at_url(url, depth.to_depth(), delegate)
        if image is None and depth is not DepthChoice.memory:
            delegate.done.wait(timeout + 5)
            image = delegate.image
        if image is None:
            print(f"[red]Not available within depth {depth.value}: {url}")
            raise typer.Exit(1)
        size = getattr(image, "size", None)
        print(f"[green]Loaded {url} from {before.name.lower()}[/green] size={size}")
        print(f"Stored as {cache.disk_cache.path_for(hash_url(url))}")
    finally:
        cache.shutdown(wait=True)


@app.command()
@_handle_errors
def depth(url: str) -> None:
    """Report whether URL is on disk or would have to be downloaded."""

    cache = _open_cache()
    try:
        print(cache.depth_for_image_at_url(url).name.lower())
    finally:
        cache.shutdown(wait=True)


@app.command()
@_handle_errors
def remove(url: str) -> None:
    """Delete URL from the cache."""

    cache = _open_cache()
    try:
        cache.remove_image_at_url(url)
        print(f"[green]Removed {hash_url(url)}")
    finally:
        cache.shutdown(wait=True)


@app.command()
@_handle_errors
def size() -> None:
    """Print the total size of the disk cache in bytes."""

    cache = _open_cache()
    try:
        total = cache.get_disk_cache_size().result()
        print(f"{total} bytes in {cache.root}")
    finally:
        cache.shutdown(wait=True)


@app.command()
@_handle_errors
def dump() -> None:
    """Delete every file in the disk cache."""

    cache = _open_cache()
    try:
        freed = cache.dump_disk_cache().result()
        print(f"[green]Freed {freed} bytes")
    finally:
        cache.shutdown(wait=True)


@app.command()
@_handle_errors
def audit(
    older_than: Optional[str] = typer.Option(None, help="Remove files created before this date"),
    accessed_before: Optional[str] = typer.Option(None, help="Remove files last read before this date"),
    days: Optional[int] = typer.Option(None, help="Remove files not read in this many days"),
) -> None:
    """Remove cached files by age."""

    chosen = [value for value in (older_than, accessed_before, days) if value is not None]
    if len(chosen) != 1:
        raise typer.BadParameter("pass exactly one of --older-than, --accessed-before or --days")
    cache = _open_cache()
    try:
        if older_than is not None:
            report = cache.audit_cache_removing_files_older_than(_parse_date(older_than)).result()
        elif accessed_before is not None:
            report = cache.audit_cache_removing_files_last_accessed_before(
                _parse_date(accessed_before)
            ).result()
        else:
            cutoff = datetime.now(timezone.utc) - timedelta(days=days)
            report = cache.audit_cache_removing_files_last_accessed_before(cutoff).result()
        print(
            f"[green]Removed {report.removed}[/green], kept {report.kept}, "
            f"{report.remaining_bytes} bytes remain"
        )
    finally:
        cache.shutdown(wait=True)


if __name__ == "__main__":  # pragma: no cover
    app()

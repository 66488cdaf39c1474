from __future__ import annotations

import argparse
import asyncio
import shutil
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.config import Settings, get_settings
from .core.db import session_scope
from .core.errors import IngestError
from .core.storage import Storage, StorageError, get_thumbnail_storage, get_video_storage
from .ingest.keys import derive_storage_key, generate_identifier
from .ingest.probe import probe_container
from .ingest.remux import remux_faststart
from .ingest.runner import LocalSubprocessRunner, ToolInvocationError
from .services.video_store import VideoStore

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check(get_settings())
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Tubely ingest developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Run ffprobe and print geometry, orientation and a sample key")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    remux_parser = subparsers.add_parser("remux", help="Write a fast-start copy of an MP4")
    remux_parser.add_argument("--file", required=True, help="Path to the source media file")
    remux_parser.add_argument("--output", help="Destination path (defaults to <file>.processing)")
    remux_parser.set_defaults(func=_cmd_remux)

    sweep_parser = subparsers.add_parser(
        "sweep-orphans",
        help="Delete stored objects whose metadata update failed, then forget them",
    )
    sweep_parser.add_argument("--dry-run", action="store_true", help="List orphans without deleting anything")
    sweep_parser.set_defaults(func=_cmd_sweep_orphans)
    return parser


def _require_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _cmd_probe(args: argparse.Namespace) -> None:
    """Run ffprobe and print the container profile.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    media_path = _require_file(args.file)
    try:
        profile = probe_container(
            media_path,
            LocalSubprocessRunner(),
            binary=settings.ffprobe_binary,
            timeout=settings.tool_timeout_s,
        )
    except IngestError as exc:
        console.print(f"[red]{exc.code}:[/] {exc.message}")
        sys.exit(3)

    sample_key = derive_storage_key("video/mp4", generate_identifier(), profile.orientation)
    console.print_json(
        data={
            "file": str(media_path),
            "width": profile.width,
            "height": profile.height,
            "orientation": profile.orientation,
            "sample_key": sample_key.path,
        }
    )


def _cmd_remux(args: argparse.Namespace) -> None:
    """Write a fast-start copy of an MP4.

    Args:
        args: The command-line arguments.
    """
    settings = get_settings()
    media_path = _require_file(args.file)
    try:
        output = remux_faststart(
            media_path,
            LocalSubprocessRunner(),
            binary=settings.ffmpeg_binary,
            timeout=settings.tool_timeout_s,
        )
    except IngestError as exc:
        console.print(f"[red]{exc.code}:[/] {exc.message}")
        sys.exit(3)

    if args.output:
        destination = Path(args.output).expanduser().resolve()
        shutil.move(str(output), str(destination))
        output = destination
    console.print(f"[green]Fast-start copy written to {output}[/]")


def _cmd_sweep_orphans(args: argparse.Namespace) -> None:
    settings = get_settings()
    storages = {
        "local": get_thumbnail_storage(settings),
        settings.video_storage_backend: get_video_storage(settings),
    }
    removed = asyncio.run(_sweep_orphans(settings, storages, dry_run=args.dry_run))
    verb = "Would remove" if args.dry_run else "Removed"
    console.print(f"[green]{verb} {removed} orphaned object(s)[/]")


async def _sweep_orphans(settings: Settings, storages: dict[str, Storage], *, dry_run: bool) -> int:
    """Reconcile objects that were uploaded but never referenced by a video record.

    Args:
        settings: Runtime settings (database location).
        storages: Storage backends keyed by their ``backend`` name.
        dry_run: Only report what would be removed.

    Returns:
        The number of orphans removed (or that would be removed).
    """
    table = Table("id", "video_id", "backend", "storage_key", "status")
    removed = 0
    async with session_scope(settings) as session:
        store = VideoStore(session)
        for orphan in await store.list_orphans():
            storage = storages.get(orphan.backend)
            if storage is None:
                table.add_row(str(orphan.id), orphan.video_id, orphan.backend, orphan.storage_key, "[yellow]no backend[/]")
                continue
            if dry_run:
                table.add_row(str(orphan.id), orphan.video_id, orphan.backend, orphan.storage_key, "pending")
                removed += 1
                continue
            try:
                storage.delete(orphan.storage_key)
            except StorageError as exc:
                table.add_row(str(orphan.id), orphan.video_id, orphan.backend, orphan.storage_key, f"[red]{exc}[/]")
                continue
            await store.forget_orphan(orphan)
            table.add_row(str(orphan.id), orphan.video_id, orphan.backend, orphan.storage_key, "[green]deleted[/]")
            removed += 1
    console.print(table)
    return removed


def _run_environment_check(settings: Settings) -> None:
    """Check for the presence of required external dependencies."""
    runner = LocalSubprocessRunner()
    results = {}
    for label, binary in (("ffmpeg", settings.ffmpeg_binary), ("ffprobe", settings.ffprobe_binary)):
        try:
            results[label] = runner.run([binary, "-version"], timeout=10).ok
        except ToolInvocationError:
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg (which ships ffprobe).[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()

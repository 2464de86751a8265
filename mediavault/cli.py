from __future__ import annotations

import argparse
import asyncio
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import magic
from rich.console import Console
from rich.table import Table

from .core.config import Settings, get_settings
from .core.db import create_engine, create_schema, create_session_factory
from .core.logging import configure_logging, level_from_name
from .core.storage import get_blob_store
from .db.models import AssetKind
from .errors import AssetNotFoundError, ValidationError
from .ingest.media import MediaProcessor
from .services.asset_repository import AssetRepository
from .services.ingest_service import IngestResult, IngestService

console = Console()
err_console = Console(stderr=True)


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

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    args.func(args, settings)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="MediaVault asset ingestion developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg, ffprobe and libmagic")

    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init-db", help="Create any missing tables in the configured database")
    init_parser.set_defaults(func=_cmd_init_db)

    ingest_parser = subparsers.add_parser("ingest", help="Ingest a local file exactly as an upload would be")
    ingest_parser.add_argument("--file", required=True, help="Path to the source media file")
    ingest_parser.set_defaults(func=_cmd_ingest)

    list_parser = subparsers.add_parser("list", help="List stored assets, newest first")
    list_parser.add_argument("--limit", type=int, default=20)
    list_parser.add_argument("--offset", type=int, default=0)
    list_parser.add_argument("--type", choices=[kind.value for kind in AssetKind], default=None)
    list_parser.set_defaults(func=_cmd_list)

    show_parser = subparsers.add_parser("show", help="Print one asset with its metadata")
    show_parser.add_argument("--id", type=int, required=True, help="Asset id")
    show_parser.set_defaults(func=_cmd_show)

    delete_parser = subparsers.add_parser("delete", help="Delete an asset and its files")
    delete_parser.add_argument("--id", type=int, required=True, help="Asset id")
    delete_parser.set_defaults(func=_cmd_delete)
    return parser


@asynccontextmanager
async def _service(settings: Settings) -> AsyncIterator[IngestService]:
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    try:
        if settings.auto_create_schema:
            await create_schema(engine)
        async with session_factory() as session:
            yield IngestService(
                settings,
                get_blob_store(settings),
                AssetRepository(session),
                MediaProcessor.from_settings(settings),
            )
    finally:
        await engine.dispose()


def _cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    async def run() -> None:
        engine = create_engine(settings)
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()

    asyncio.run(run())
    console.print(f"[green]Schema ensured at {settings.database_url}[/]")


def _cmd_ingest(args: argparse.Namespace, settings: Settings) -> None:
    """Ingest a local file and print the stored record.

    Args:
        args: The command-line arguments.
        settings: The runtime settings.
    """
    media_path = Path(args.file).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)

    async def run() -> IngestResult:
        async with _service(settings) as service:
            with media_path.open("rb") as handle:
                return await service.ingest(
                    handle,
                    original_name=media_path.name,
                    declared_size=media_path.stat().st_size,
                )

    try:
        result = asyncio.run(run())
    except ValidationError as exc:
        err_console.print(f"[red]Rejected ({exc.reason}):[/] {exc.message}")
        sys.exit(3)

    console.print_json(data=_result_payload(result))
    if result.duplicate:
        err_console.print(f"[yellow]Already stored as asset {result.asset.id}[/]")
    else:
        err_console.print(f"[green]Stored as asset {result.asset.id}[/]")


def _cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    kind = AssetKind(args.type) if args.type else None

    async def run():
        async with _service(settings) as service:
            return await service.list_assets(limit=args.limit, offset=args.offset, kind=kind)

    page = asyncio.run(run())
    table = Table(title=f"Assets ({page.total} total)")
    for column in ("id", "kind", "mime", "size", "dimensions", "name", "created"):
        table.add_column(column)
    for asset in page.items:
        dimensions = f"{asset.width}x{asset.height}" if asset.width and asset.height else "-"
        table.add_row(
            str(asset.id),
            asset.kind.value,
            asset.mime_type,
            str(asset.file_size),
            dimensions,
            asset.original_name,
            asset.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)


def _cmd_show(args: argparse.Namespace, settings: Settings) -> None:
    async def run() -> IngestResult:
        async with _service(settings) as service:
            return await service.get_asset(args.id)

    try:
        result = asyncio.run(run())
    except AssetNotFoundError:
        console.print(f"[red]Asset {args.id} not found[/]")
        sys.exit(4)
    console.print_json(data=_result_payload(result))


def _cmd_delete(args: argparse.Namespace, settings: Settings) -> None:
    async def run() -> None:
        async with _service(settings) as service:
            await service.delete_asset(args.id)

    try:
        asyncio.run(run())
    except AssetNotFoundError:
        console.print(f"[red]Asset {args.id} not found[/]")
        sys.exit(4)
    console.print(f"[green]Deleted asset {args.id}[/]")


def _result_payload(result: IngestResult) -> dict:
    asset = result.asset
    payload = {
        "id": asset.id,
        "duplicate": result.duplicate,
        "original_name": asset.original_name,
        "file_path": asset.file_path,
        "thumbnail_path": asset.thumbnail_path,
        "mime_type": asset.mime_type,
        "kind": asset.kind.value,
        "file_size": asset.file_size,
        "width": asset.width,
        "height": asset.height,
        "content_hash": asset.content_hash,
        "created_at": asset.created_at.isoformat(),
    }
    image = result.metadata.image
    if image is not None:
        payload["image_metadata"] = {
            "make": image.make,
            "model": image.model,
            "captured_at": image.captured_at,
            "exposure_time": image.exposure_time,
            "f_number": image.f_number,
            "iso": image.iso,
            "focal_length": image.focal_length,
            "lens_model": image.lens_model,
            "gps_latitude": image.gps_latitude,
            "gps_longitude": image.gps_longitude,
            "color_space": image.color_space,
            "tags": image.tags,
        }
    video = result.metadata.video
    if video is not None:
        payload["video_metadata"] = {
            "duration": video.duration,
            "video_codec": video.video_codec,
            "audio_codec": video.audio_codec,
            "frame_rate": video.frame_rate,
            "pixel_format": video.pixel_format,
            "bit_depth": video.bit_depth,
            "is_hdr": video.is_hdr,
            "hdr_format": video.hdr_format,
        }
    return payload


def _run_environment_check(settings: Settings) -> None:
    """Check for the presence of required external dependencies."""
    checks = {
        "ffmpeg": [settings.ffmpeg_binary, "-version"],
        "ffprobe": [settings.ffprobe_binary, "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
            results[label] = True
        except (OSError, subprocess.CalledProcessError):
            results[label] = False
    try:
        magic.from_buffer(b"\xff\xd8\xff", mime=True)
        results["libmagic"] = True
    except magic.MagicException:
        results["libmagic"] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Consult Dockerfile/pyproject.toml.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()

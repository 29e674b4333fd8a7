"""CLI entry point for kaede."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from kaede import __version__
from kaede.base import GraphicsApi, IntegrationKind, KaedeError, OverrideResult

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kaede",
        description="Choose which GPU each application renders on.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"kaede {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to config TOML file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Log debug output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("gpus", help="List detected GPUs")

    renderer = subparsers.add_parser("renderer", help="Show the active OpenGL/Vulkan renderer")
    renderer.add_argument(
        "--gpu",
        default=None,
        metavar="GPU",
        help="Probe with DRI_PRIME pointed at this GPU (index, card or bus address)",
    )

    apps = subparsers.add_parser("apps", help="List launchable applications")
    apps.add_argument(
        "--kind",
        choices=[k.value for k in IntegrationKind],
        default=None,
        help="Only show one integration kind",
    )

    set_ = subparsers.add_parser("set", help="Run an application on a GPU")
    set_.add_argument("app_id", metavar="APP_ID", help="Desktop file name, e.g. org.gimp.GIMP.desktop")
    set_.add_argument("gpu", metavar="GPU", help="GPU index, card name or PCI bus address")
    set_.add_argument(
        "--api",
        choices=[a.value for a in GraphicsApi],
        default=None,
        help="Only route this API (default: both)",
    )

    reset = subparsers.add_parser("reset", help="Undo kaede's override for an application")
    reset.add_argument("app_id", metavar="APP_ID")

    return parser


def _run_gpus(manager, console: Console) -> int:
    table = Table(title="GPUs")
    for column in ("Index", "Card", "Model", "Vendor", "Driver", "Render node", "Bus"):
        table.add_column(column)
    for gpu in manager.gpus():
        table.add_row(
            str(gpu.index),
            gpu.card,
            gpu.model,
            gpu.vendor_class.value,
            gpu.driver or "-",
            gpu.render_node or "-",
            gpu.bus_address or "-",
        )
    console.print(table)
    return 0


def _run_renderer(manager, console: Console, gpu: str | None) -> int:
    info = manager.renderer(gpu)
    console.print(f"API:      {info.api.value}")
    console.print(f"Renderer: {info.renderer}")
    if info.driver:
        console.print(f"Driver:   {info.driver}")
    if info.device is not None:
        console.print(f"GPU:      {info.device.card} (DRI_PRIME={info.device.index})")
    return 0


def _run_apps(manager, console: Console, kind: str | None) -> int:
    selected = IntegrationKind(kind) if kind else None
    table = Table(title="Applications")
    for column in ("App id", "Name", "Kind", "GPU"):
        table.add_column(column)
    for entry in manager.visible_apps(selected):
        pref = manager.preferences.get(entry.app_id)
        table.add_row(entry.app_id, entry.name, entry.kind.value, pref.gpu if pref else "-")
    console.print(table)
    return 0


def _report(result: OverrideResult, console: Console) -> int:
    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    console.print(result.message)
    if result.backup_path is not None:
        console.print(f"Backup: {result.backup_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the kaede CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    from kaede.config import load_config
    from kaede.manager import GpuManager

    console = Console()
    try:
        config = load_config(args.config)
        manager = GpuManager(config, args.config)
        if args.command == "gpus":
            return _run_gpus(manager, console)
        if args.command == "renderer":
            return _run_renderer(manager, console, args.gpu)
        if args.command == "apps":
            return _run_apps(manager, console, args.kind)
        if args.command == "set":
            api = GraphicsApi(args.api) if args.api else None
            return _report(manager.assign(args.app_id, args.gpu, api), console)
        if args.command == "reset":
            return _report(manager.reset(args.app_id), console)
    except KaedeError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    parser.error(f"unknown command {args.command!r}")
    return 2

"""Ties inventory, probe, resolver, engine and preferences together."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from kaede import apps, hardware, probe
from kaede.base import (
    AppEntry,
    DiscoveryError,
    GpuDevice,
    GpuSelection,
    GraphicsApi,
    IntegrationKind,
    LocateError,
    OverrideResult,
    ProbeError,
    RendererInfo,
)
from kaede.config import KaedeConfig
from kaede.hardware import normalize_bus_address
from kaede.overrides import OverrideEngine
from kaede.preferences import PreferenceStore
from kaede.resolver import resolve
from kaede.runner import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Result of one full refresh."""

    gpus: tuple[GpuDevice, ...]
    apps: tuple[AppEntry, ...]
    renderer: RendererInfo | None


class GpuManager:
    """Front-end facing operations over one loaded config."""

    def __init__(
        self,
        config: KaedeConfig,
        config_path: Path | None = None,
        *,
        runner: CommandRunner | None = None,
        engine: OverrideEngine | None = None,
        sysfs_root: str | Path = "/sys",
        dev_root: str | Path = "/dev",
    ) -> None:
        self.config = config
        self.runner = runner or CommandRunner(timeout=config.general.command_timeout)
        self.engine = engine or OverrideEngine(
            runner=self.runner, user_applications_dir=config.paths.user_dir()
        )
        self.preferences = PreferenceStore(config, config_path)
        self._sysfs_root = sysfs_root
        self._dev_root = dev_root
        self._gpus: tuple[GpuDevice, ...] | None = None
        self._apps: tuple[AppEntry, ...] | None = None

    # --- Discovery ---

    def scan_gpus(self) -> tuple[GpuDevice, ...]:
        self._gpus = hardware.scan(self.runner, sysfs_root=self._sysfs_root, dev_root=self._dev_root)
        return self._gpus

    def scan_apps(self) -> tuple[AppEntry, ...]:
        paths = self.config.paths
        self._apps = apps.scan(
            paths.search_dirs(),
            steam_roots=paths.steam_dirs(),
            heroic_dirs=paths.heroic_dirs(),
        )
        return self._apps

    def gpus(self) -> tuple[GpuDevice, ...]:
        return self._gpus if self._gpus is not None else self.scan_gpus()

    def apps(self) -> tuple[AppEntry, ...]:
        return self._apps if self._apps is not None else self.scan_apps()

    def visible_apps(self, kind: IntegrationKind | None = None) -> list[AppEntry]:
        """Indexed apps after the ``[filters]`` settings and an optional kind."""
        filters = self.config.filters
        hidden = set()
        if not filters.show_steam_apps:
            hidden.add(IntegrationKind.STEAM_GAME)
        if not filters.show_heroic_apps:
            hidden.add(IntegrationKind.HEROIC_GAME)
        if not filters.show_flatpak_apps:
            hidden.add(IntegrationKind.FLATPAK)
        return [
            a for a in self.apps()
            if a.kind not in hidden and (kind is None or a.kind is kind)
        ]

    def renderer(self, gpu: str | None = None) -> RendererInfo:
        devices = self.gpus()
        prime_index = self.find_gpu(gpu).index if gpu is not None else None
        return probe.probe(self.runner, devices=devices, prime_index=prime_index)

    def refresh(self) -> Snapshot:
        gpus = self.scan_gpus()
        entries = self.scan_apps()
        try:
            renderer = probe.probe(self.runner, devices=gpus)
        except ProbeError as exc:
            logger.warning("Renderer probe failed: %s", exc)
            renderer = None
        return Snapshot(gpus=gpus, apps=entries, renderer=renderer)

    def refresh_in_background(self, executor: ThreadPoolExecutor | None = None) -> Future[Snapshot]:
        """Run :meth:`refresh` on a worker thread.

        Without an *executor* a single-worker pool is created and shut down
        once the refresh has been submitted.
        """
        if executor is not None:
            return executor.submit(self.refresh)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kaede-refresh")
        future = pool.submit(self.refresh)
        pool.shutdown(wait=False)
        return future

    # --- Lookup ---

    def find_app(self, app_id: str) -> AppEntry:
        for entry in self.apps():
            if entry.app_id == app_id:
                return entry
        if not app_id.endswith(".desktop"):
            return self.find_app(app_id + ".desktop")
        raise LocateError(f"Unknown application {app_id}", target=app_id)

    def find_gpu(self, ref: str) -> GpuDevice:
        """Look up a GPU by DRI_PRIME index, card name or PCI bus address."""
        devices = self.gpus()
        if ref.isdigit():
            for device in devices:
                if device.index == int(ref):
                    return device
        for device in devices:
            if ref == device.card:
                return device
        address = normalize_bus_address(ref)
        for device in devices:
            if device.bus_address == address:
                return device
        raise DiscoveryError(f"No GPU matches {ref!r}")

    # --- Overrides ---

    def assign(self, app_id: str, gpu: str, api: GraphicsApi | None = None) -> OverrideResult:
        """Route *app_id* to *gpu* and remember the choice on success."""
        entry = self.find_app(app_id)
        device = self.find_gpu(gpu)
        env = resolve(device, api, entry.kind)
        result = self.engine.apply(entry, env)
        if result.success:
            selection = GpuSelection(
                app_id=entry.app_id, gpu=device.bus_address or device.card, api=api
            )
            self.preferences.set(selection)
            self.preferences.save()
        return result

    def reset(self, app_id: str) -> OverrideResult:
        entry = self.find_app(app_id)
        result = self.engine.reset(entry)
        if result.success and self.preferences.remove(entry.app_id):
            self.preferences.save()
        return result

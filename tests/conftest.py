"""Shared test fixtures for kaede tests."""

from __future__ import annotations

import json
import os
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest

from kaede.base import AppEntry, GpuDevice, IntegrationKind, VendorClass
from tests.fixtures.fake_runner import FakeRunner
from tests.fixtures.samples import HEROIC_GAME, LOCALCONFIG

# ---------------------------------------------------------------------------
# GPUs
# ---------------------------------------------------------------------------


@pytest.fixture()
def intel_igpu() -> GpuDevice:
    return GpuDevice(
        card="card0",
        index=0,
        bus_address="0000:00:02.0",
        model="Intel Corporation Alder Lake-P GT2 [Iris Xe Graphics]",
        vendor_class=VendorClass.MESA,
        vendor_id="0x8086",
        device_id="0x46a6",
        driver="i915",
        render_node="/dev/dri/renderD128",
    )


@pytest.fixture()
def amd_dgpu() -> GpuDevice:
    return GpuDevice(
        card="card1",
        index=1,
        bus_address="0000:03:00.0",
        model="Navi 23 [Radeon RX 6600/6600 XT/6600M]",
        vendor_class=VendorClass.MESA,
        vendor_id="0x1002",
        device_id="0x73ff",
        driver="amdgpu",
        render_node="/dev/dri/renderD129",
    )


@pytest.fixture()
def nvidia_dgpu() -> GpuDevice:
    return GpuDevice(
        card="card1",
        index=1,
        bus_address="0000:01:00.0",
        model="NVIDIA Corporation GA107M [GeForce RTX 3050 Mobile]",
        vendor_class=VendorClass.NVIDIA,
        vendor_id="0x10de",
        device_id="0x25a2",
        driver="nvidia",
        render_node="/dev/dri/renderD129",
    )


# ---------------------------------------------------------------------------
# Fake sysfs / desktop trees
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_sysfs(tmp_path: Path):
    """Build a minimal ``/sys/class/drm`` tree.

    Returns ``add_card(name, slot, vendor, device, driver, render=None)``;
    the sysfs root is available as ``add_card.root``.
    """
    root = tmp_path / "sys"
    drm = root / "class" / "drm"
    drm.mkdir(parents=True)
    drivers = root / "bus" / "pci" / "drivers"

    def add_card(
        name: str,
        slot: str,
        vendor: str,
        device: str,
        driver: str | None,
        render: str | None = None,
    ) -> Path:
        dev = root / "devices" / slot
        dev.mkdir(parents=True)
        (dev / "vendor").write_text(vendor + "\n")
        (dev / "device").write_text(device + "\n")
        uevent = f"PCI_SLOT_NAME={slot}\n"
        if driver:
            uevent = f"DRIVER={driver}\n" + uevent
            (drivers / driver).mkdir(parents=True, exist_ok=True)
            os.symlink(drivers / driver, dev / "driver")
        (dev / "uevent").write_text(uevent)
        if render:
            (dev / "drm" / render).mkdir(parents=True)
        card = drm / name
        card.mkdir()
        os.symlink(dev, card / "device")
        return card

    add_card.root = root  # type: ignore[attr-defined]
    return add_card


@pytest.fixture()
def write_desktop(tmp_path: Path):
    """Write a ``[Desktop Entry]`` file; returns its path."""

    def _write(directory: Path, name: str, body: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text("[Desktop Entry]\n" + textwrap.dedent(body).lstrip("\n"))
        return path

    return _write


# ---------------------------------------------------------------------------
# Override targets
# ---------------------------------------------------------------------------


@pytest.fixture()
def steam_config(tmp_path: Path) -> Path:
    cfg = tmp_path / "Steam" / "userdata" / "12345" / "config" / "localconfig.vdf"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(LOCALCONFIG)
    return cfg


@pytest.fixture()
def steam_entry(tmp_path: Path, steam_config: Path) -> AppEntry:
    return AppEntry(
        app_id="Dota 2.desktop",
        name="Dota 2",
        exec="steam steam://rungameid/570",
        kind=IntegrationKind.STEAM_GAME,
        desktop_path=tmp_path / "apps" / "Dota 2.desktop",
        steam_app_id="570",
        steam_config=steam_config,
    )


@pytest.fixture()
def heroic_config(tmp_path: Path) -> Path:
    cfg = tmp_path / "heroic" / "GamesConfig" / "Fortnite.json"
    cfg.parent.mkdir(parents=True)
    cfg.write_text(json.dumps(HEROIC_GAME, indent=2) + "\n")
    return cfg


@pytest.fixture()
def heroic_entry(tmp_path: Path, heroic_config: Path) -> AppEntry:
    return AppEntry(
        app_id="Fortnite.desktop",
        name="Fortnite",
        exec="xdg-open heroic://launch/legendary/Fortnite",
        kind=IntegrationKind.HEROIC_GAME,
        desktop_path=tmp_path / "apps" / "Fortnite.desktop",
        heroic_app_name="Fortnite",
        heroic_platform="legendary",
        heroic_config=heroic_config,
    )


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def steam_not_running():
    with patch("kaede.overrides.steam.steam_running", return_value=False):
        yield

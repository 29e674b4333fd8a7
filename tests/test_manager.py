"""Tests for GpuManager orchestration."""

from __future__ import annotations

from pathlib import Path

import pytest

from kaede.base import DiscoveryError, GraphicsApi, IntegrationKind, LocateError
from kaede.config import KaedeConfig, PathsConfig, load_config
from kaede.manager import GpuManager
from tests.fixtures.fake_runner import GLXINFO_INTEL, LSPCI_DUAL_AMD, FakeRunner, ok


@pytest.fixture()
def workspace(tmp_path: Path, fake_sysfs, write_desktop):
    fake_sysfs("card0", "0000:0c:00.0", "0x1002", "0x1638", "amdgpu", "renderD128")
    fake_sysfs("card1", "0000:03:00.0", "0x1002", "0x73ff", "amdgpu", "renderD129")
    system = tmp_path / "usr" / "share" / "applications"
    write_desktop(system, "blender.desktop", "Type=Application\nName=Blender\nExec=blender %f\n")
    write_desktop(
        system,
        "org.gimp.GIMP.desktop",
        "Type=Application\nName=GIMP\nExec=flatpak run org.gimp.GIMP %U\nX-Flatpak=org.gimp.GIMP\n",
    )
    config = KaedeConfig(
        paths=PathsConfig(
            application_dirs=[system],
            user_applications_dir=tmp_path / "user-apps",
            steam_roots=[],
            heroic_config_dirs=[],
        )
    )
    return config, tmp_path / "config.toml", fake_sysfs.root


def _manager(workspace, runner: FakeRunner | None = None) -> GpuManager:
    config, path, sysfs = workspace
    runner = runner or FakeRunner({"lspci": ok(LSPCI_DUAL_AMD), "flatpak": ok()})
    return GpuManager(config, path, runner=runner, sysfs_root=sysfs)


class TestLookup:
    def test_find_gpu_by_index_card_and_address(self, workspace) -> None:
        manager = _manager(workspace)
        assert manager.find_gpu("1").card == "card1"
        assert manager.find_gpu("card0").index == 0
        assert manager.find_gpu("03:00.0").card == "card1"
        assert manager.find_gpu("0000:0c:00.0").card == "card0"

    def test_find_gpu_unknown(self, workspace) -> None:
        with pytest.raises(DiscoveryError):
            _manager(workspace).find_gpu("7")

    def test_find_app_without_suffix(self, workspace) -> None:
        assert _manager(workspace).find_app("blender").app_id == "blender.desktop"

    def test_find_app_unknown(self, workspace) -> None:
        with pytest.raises(LocateError, match="Unknown application"):
            _manager(workspace).find_app("nope.desktop")


class TestVisibleApps:
    def test_filters(self, workspace) -> None:
        manager = _manager(workspace)
        assert {a.app_id for a in manager.visible_apps()} == {"blender.desktop", "org.gimp.GIMP.desktop"}

        manager.config.filters.show_flatpak_apps = False
        assert [a.app_id for a in manager.visible_apps()] == ["blender.desktop"]

    def test_kind(self, workspace) -> None:
        apps = _manager(workspace).visible_apps(IntegrationKind.FLATPAK)
        assert [a.app_id for a in apps] == ["org.gimp.GIMP.desktop"]


class TestAssign:
    def test_assign_native_and_save(self, workspace, tmp_path: Path) -> None:
        manager = _manager(workspace)

        result = manager.assign("blender.desktop", "1", GraphicsApi.VULKAN)

        assert result.success
        override = (tmp_path / "user-apps" / "blender.desktop").read_text()
        assert "Exec=env DRI_PRIME=1 MESA_VK_DEVICE_SELECT=1002:73ff" in override
        saved = load_config(tmp_path / "config.toml")
        assert saved.assignments["blender.desktop"].gpu == "0000:03:00.0"
        assert saved.assignments["blender.desktop"].api == "vulkan"

    def test_assign_flatpak(self, workspace) -> None:
        runner = FakeRunner({"lspci": ok(LSPCI_DUAL_AMD), "flatpak": ok()})
        manager = _manager(workspace, runner)

        result = manager.assign("org.gimp.GIMP.desktop", "0000:0c:00.0")

        assert result.success
        flatpak_calls = [argv for argv, _ in runner.calls if argv[0] == "flatpak"]
        assert flatpak_calls[0][-1] == "org.gimp.GIMP"
        assert "--env=DRI_PRIME=0" in flatpak_calls[0]

    def test_failed_apply_not_saved(self, workspace, tmp_path: Path) -> None:
        runner = FakeRunner({"lspci": ok(LSPCI_DUAL_AMD)})
        manager = _manager(workspace, runner)

        result = manager.assign("org.gimp.GIMP.desktop", "1")

        assert not result.success
        assert not (tmp_path / "config.toml").exists()

    def test_reset_drops_preference(self, workspace, tmp_path: Path) -> None:
        manager = _manager(workspace)
        manager.assign("blender.desktop", "1")

        result = manager.reset("blender.desktop")

        assert result.success
        assert not (tmp_path / "user-apps" / "blender.desktop").exists()
        assert "blender.desktop" not in load_config(tmp_path / "config.toml").assignments


class TestRefresh:
    def test_background_refresh(self, workspace) -> None:
        runner = FakeRunner({"lspci": ok(LSPCI_DUAL_AMD), "glxinfo": ok(GLXINFO_INTEL)})
        manager = _manager(workspace, runner)

        snapshot = manager.refresh_in_background().result(timeout=10)

        assert len(snapshot.gpus) == 2
        assert {a.app_id for a in snapshot.apps} == {"blender.desktop", "org.gimp.GIMP.desktop"}
        assert snapshot.renderer is not None

    def test_probe_failure_is_not_fatal(self, workspace) -> None:
        snapshot = _manager(workspace).refresh()
        assert snapshot.renderer is None

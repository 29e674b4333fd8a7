"""End-to-end CLI smoke tests for kaede.

These run ``python -m kaede`` in a subprocess and are marked with
@pytest.mark.integration. The ``gpus`` test needs a real DRM device.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[2] / "src"


def _run(*args: str, config_home: Path) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC), env.get("PYTHONPATH")]))
    env["XDG_CONFIG_HOME"] = str(config_home)
    return subprocess.run(
        [sys.executable, "-m", "kaede", *args],
        capture_output=True,
        text=True,
        timeout=30,
        env=env,
    )


@pytest.mark.integration
class TestCLIHelp:
    def test_help_lists_commands(self, tmp_path: Path) -> None:
        result = _run("--help", config_home=tmp_path)
        assert result.returncode == 0
        for command in ("gpus", "renderer", "apps", "set", "reset"):
            assert command in result.stdout

    def test_version(self, tmp_path: Path) -> None:
        from kaede import __version__

        result = _run("--version", config_home=tmp_path)
        assert result.returncode == 0
        assert f"kaede {__version__}" in result.stdout


@pytest.mark.integration
class TestCLIRealHardware:
    def test_gpus(self, tmp_path: Path) -> None:
        drm = Path("/sys/class/drm")
        if not drm.is_dir() or not any(p.name[4:].isdigit() for p in drm.glob("card*")):
            pytest.skip("no DRM card nodes on this machine")
        result = _run("gpus", config_home=tmp_path)
        assert result.returncode == 0, result.stderr
        assert "card" in result.stdout

    def test_unknown_app_reports_error(self, tmp_path: Path) -> None:
        result = _run("reset", "does-not-exist.desktop", config_home=tmp_path)
        assert result.returncode == 1
        assert "Error:" in result.stderr

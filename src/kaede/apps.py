"""Application index built from desktop entries.

Directories are scanned in a fixed order and the first entry seen for an
application id wins. The default order puts system-wide locations before
user-wide ones, so a user-level file with the same id as a system entry
(including kaede's own overrides) never replaces the system original as the
source of truth.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from kaede.base import AppEntry, IntegrationKind
from kaede.desktop_entry import MANAGED_KEY, ORIGINAL_EXEC_KEY, read_main_group, strip_field_codes

logger = logging.getLogger(__name__)

_FLATPAK_EXPORT_MARKER = "/flatpak/exports/share/applications"
_FLATPAK_ID_RE = re.compile(r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_\-]+)+$")
_STEAM_RUNGAMEID_RE = re.compile(r"steam://rungameid/(\d+)")
_HEROIC_PATH_RE = re.compile(r"heroic://launch/([^/?\s\"']+)/([^/?\s\"']+)")
_HEROIC_QUERY_RE = re.compile(r"heroic://launch\?([^\s\"']+)")


def default_application_dirs() -> list[Path]:
    home = Path.home()
    return [
        Path("/usr/share/applications"),
        Path("/usr/local/share/applications"),
        Path("/var/lib/flatpak/exports/share/applications"),
        home / ".local/share/flatpak/exports/share/applications",
        home / ".local/share/applications",
    ]


def default_steam_roots() -> list[Path]:
    home = Path.home()
    return [
        home / ".steam/steam",
        home / ".local/share/Steam",
        home / ".var/app/com.valvesoftware.Steam/data/Steam",
    ]


def default_heroic_dirs() -> list[Path]:
    home = Path.home()
    return [
        home / ".config/heroic/GamesConfig",
        home / ".var/app/com.heroicgameslauncher.hgl/config/heroic/GamesConfig",
    ]


def scan(
    search_paths: Sequence[str | Path] | None = None,
    *,
    steam_roots: Sequence[str | Path] | None = None,
    heroic_dirs: Sequence[str | Path] | None = None,
) -> tuple[AppEntry, ...]:
    """Index every launchable application under *search_paths*."""
    dirs = [Path(p) for p in (search_paths if search_paths is not None else default_application_dirs())]
    steam_configs = find_localconfig_files(
        [Path(p) for p in (steam_roots if steam_roots is not None else default_steam_roots())]
    )
    heroic = [Path(p) for p in (heroic_dirs if heroic_dirs is not None else default_heroic_dirs())]
    steam_cache: dict[Path, str] = {}

    seen: dict[str, AppEntry] = {}
    for directory in dirs:
        for path in _desktop_files(directory):
            app_id = path.name
            if app_id in seen:
                logger.debug("%s shadowed by %s", path, seen[app_id].desktop_path)
                continue
            entry = parse_entry(path, steam_configs, heroic, steam_cache)
            if entry is not None:
                seen[app_id] = entry

    return tuple(sorted(seen.values(), key=lambda a: (a.name.lower(), a.app_id)))


def parse_entry(
    path: Path,
    steam_configs: Sequence[Path] = (),
    heroic_dirs: Sequence[Path] = (),
    steam_cache: dict[Path, str] | None = None,
) -> AppEntry | None:
    """Build an :class:`AppEntry` from one desktop file, or ``None`` to skip it."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return None

    group = read_main_group(text)
    if group.get("Type") != "Application":
        return None
    if group.get("NoDisplay", "").lower() == "true" or group.get("Hidden", "").lower() == "true":
        return None

    raw_exec = group.get(ORIGINAL_EXEC_KEY) if group.get(MANAGED_KEY) == "true" else None
    exec_line = strip_field_codes(raw_exec or group.get("Exec", ""))
    if not exec_line:
        return None

    common = {
        "app_id": path.name,
        "name": group.get("Name") or "Unnamed Application",
        "exec": exec_line,
        "desktop_path": path,
        "icon": group.get("Icon"),
    }

    steam_id = steam_app_id_from_exec(exec_line)
    if steam_id is not None:
        return AppEntry(
            kind=IntegrationKind.STEAM_GAME,
            steam_app_id=steam_id,
            steam_config=_pick_localconfig(steam_id, steam_configs, steam_cache),
            **common,
        )

    heroic = heroic_game_from_exec(exec_line)
    if heroic is not None:
        platform, app_name = heroic
        return AppEntry(
            kind=IntegrationKind.HEROIC_GAME,
            heroic_platform=platform,
            heroic_app_name=app_name,
            heroic_config=find_heroic_config(app_name, heroic_dirs),
            **common,
        )

    flatpak_id = _flatpak_app_id(path, group, exec_line)
    if flatpak_id is not None:
        return AppEntry(kind=IntegrationKind.FLATPAK, flatpak_app_id=flatpak_id, **common)

    return AppEntry(kind=IntegrationKind.NATIVE_DESKTOP, **common)


# ---------------------------------------------------------------------------
# Exec classification
# ---------------------------------------------------------------------------


def steam_app_id_from_exec(exec_line: str) -> str | None:
    m = _STEAM_RUNGAMEID_RE.search(exec_line)
    if m:
        return m.group(1)
    parts = exec_line.split()
    if "-applaunch" in parts:
        i = parts.index("-applaunch")
        if i + 1 < len(parts) and parts[i + 1].isdigit():
            return parts[i + 1]
    return None


def heroic_game_from_exec(exec_line: str) -> tuple[str | None, str] | None:
    """Return ``(platform, app_name)`` for a Heroic launch URI."""
    m = _HEROIC_PATH_RE.search(exec_line)
    if m:
        return m.group(1), m.group(2)

    m = _HEROIC_QUERY_RE.search(exec_line)
    if not m:
        return None
    params: dict[str, str] = {}
    for pair in m.group(1).split("&"):
        key, _, value = pair.partition("=")
        if value:
            params[key] = value
    app_name = params.get("appName")
    if not app_name:
        return None
    return params.get("runner"), app_name


def flatpak_app_id_from_exec(exec_line: str) -> str | None:
    parts = exec_line.split()
    for i in range(len(parts) - 1):
        if (parts[i] == "flatpak" or parts[i].endswith("/flatpak")) and parts[i + 1] == "run":
            for token in parts[i + 2 :]:
                if token.startswith("-"):
                    continue
                return token if _FLATPAK_ID_RE.match(token) else None
    return None


def _flatpak_app_id(path: Path, group: dict[str, str], exec_line: str) -> str | None:
    from_key = group.get("X-Flatpak")
    from_exec = flatpak_app_id_from_exec(exec_line)
    in_export_tree = _FLATPAK_EXPORT_MARKER in path.as_posix()
    if not (from_key or from_exec or in_export_tree):
        return None
    return from_key or from_exec or path.name.removesuffix(".desktop")


# ---------------------------------------------------------------------------
# Locators
# ---------------------------------------------------------------------------


def find_localconfig_files(steam_roots: Iterable[Path]) -> list[Path]:
    """All ``userdata/<uid>/config/localconfig.vdf`` files, sorted, deduplicated."""
    found: set[Path] = set()
    for root in steam_roots:
        userdata = root / "userdata"
        try:
            users = sorted(os.listdir(userdata))
        except OSError:
            continue
        for user in users:
            cfg = userdata / user / "config" / "localconfig.vdf"
            if cfg.is_file():
                found.add(cfg.resolve())
    return sorted(found)


def find_heroic_config(app_name: str, heroic_dirs: Iterable[Path]) -> Path | None:
    wanted = f"{app_name}.json".lower()
    for directory in heroic_dirs:
        exact = directory / f"{app_name}.json"
        if exact.is_file():
            return exact
        try:
            names = sorted(os.listdir(directory))
        except OSError:
            continue
        for name in names:
            if name.lower() == wanted:
                return directory / name
    return None


def _pick_localconfig(
    app_id: str, configs: Sequence[Path], cache: dict[Path, str] | None
) -> Path | None:
    if not configs:
        return None
    needle = f'"{app_id}"'
    for cfg in configs:
        if cache is not None and cfg in cache:
            text = cache[cfg]
        else:
            try:
                text = cfg.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            if cache is not None:
                cache[cfg] = text
        if needle in text:
            return cfg
    return configs[0]


def _desktop_files(directory: Path) -> list[Path]:
    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return []
    return [directory / n for n in names if n.endswith(".desktop")]

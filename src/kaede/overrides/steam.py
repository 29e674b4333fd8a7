"""Steam: per-game ``LaunchOptions`` in ``userdata/<uid>/config/localconfig.vdf``."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import psutil

from kaede import vdf
from kaede.base import AppEntry, EnvVarSet, IntegrationKind, LocateError, ParseError
from kaede.overrides.base import FileOverrideHandler, Mutation, read_target
from kaede.resolver import MANAGED_VARIABLES

logger = logging.getLogger(__name__)

COMMAND_PLACEHOLDER = "%command%"
_APPS_PATH = ("UserLocalConfigStore", "Software", "Valve", "Steam", "apps")
_TOKEN_RE = re.compile(r"\s*(\S+)")
_STEAM_PROCESS_NAMES = frozenset({"steam"})


class SteamOverrideHandler(FileOverrideHandler):
    kind = IntegrationKind.STEAM_GAME

    def locate(self, entry: AppEntry) -> Path:
        if not entry.steam_app_id:
            raise LocateError(f"{entry.app_id} has no Steam AppId")
        if entry.steam_config is None:
            raise LocateError(f"No Steam localconfig.vdf found for AppId {entry.steam_app_id}")
        return entry.steam_config

    def mutate(self, entry: AppEntry, target: Path, env: EnvVarSet | None) -> Mutation:
        if steam_running():
            logger.warning(
                "Steam appears to be running; it may overwrite %s when it exits", target
            )
        text = read_target(target, "Steam config")
        try:
            updated, message = update_launch_options(text, entry.steam_app_id or "", env)
        except vdf.VdfError as exc:
            raise ParseError(f"Malformed VDF in {target}: {exc}", target=target) from exc
        except LookupError as exc:
            raise LocateError(f"{exc} in {target}", target=target) from exc
        return Mutation(payload=updated, changed=updated != text, message=message)


def update_launch_options(text: str, app_id: str, env: EnvVarSet | None) -> tuple[str, str]:
    """Return ``(new_text, message)`` with the app's LaunchOptions rewritten.

    Only the LaunchOptions value (or a newly inserted line/block) changes;
    every other byte of *text* is kept. Raises :class:`vdf.VdfError` for
    malformed input and ``LookupError`` when there is no ``apps`` block.
    """
    nodes = vdf.parse(text)
    apps = find_apps_block(nodes)
    if apps is None:
        raise LookupError("No Steam apps block")

    app = apps.find(app_id)
    if app is not None and not app.is_block:
        raise vdf.VdfError(f"App {app_id} is not a block", text, app.value_start)

    launch = app.find("LaunchOptions", ignore_case=True) if app is not None else None
    if launch is not None and launch.is_block:
        raise vdf.VdfError("LaunchOptions is not a string", text, launch.value_start)

    current = (launch.value if launch is not None else None) or ""
    desired = build_launch_options(current, env)

    if desired == current:
        return text, f"LaunchOptions for {app_id} already up to date"

    if launch is not None:
        new_text = text[: launch.value_start] + vdf.quote(desired) + text[launch.value_end :]
    elif app is not None:
        new_text = _insert_before_close(text, app.value_end, f'"LaunchOptions"\t\t{vdf.quote(desired)}')
    else:
        block_indent = vdf.line_indent(text, apps.value_end) + "\t"
        block = (
            f'"{app_id}"\n'
            f"{block_indent}{{\n"
            f'{block_indent}\t"LaunchOptions"\t\t{vdf.quote(desired)}\n'
            f"{block_indent}}}"
        )
        new_text = _insert_before_close(text, apps.value_end, block)

    return new_text, f"LaunchOptions for {app_id} set to {desired!r}"


def build_launch_options(existing: str, env: EnvVarSet | None) -> str:
    """Compose ``"VAR=value ... %command% <user tail>"``.

    Kaede's previous prefix is stripped first; user-authored options are
    kept. With *env* ``None`` or empty only the stripped value remains.
    """
    tail = strip_managed_prefix(existing)
    if not env:
        return tail
    if COMMAND_PLACEHOLDER not in tail:
        # Bare options such as "-novid" are arguments to the game.
        tail = f"{COMMAND_PLACEHOLDER} {tail}".strip()
    return f"{' '.join(env.assignments())} {tail}"


def strip_managed_prefix(value: str) -> str:
    """Drop leading ``env`` / ``NAME=value`` tokens whose NAME kaede manages."""
    pos = 0
    consumed = 0
    while True:
        m = _TOKEN_RE.match(value, pos)
        if m is None:
            break
        token = m.group(1)
        name, sep, _ = token.partition("=")
        if sep and name in MANAGED_VARIABLES:
            pos = consumed = m.end()
            continue
        if token == "env" and _next_is_managed(value, m.end()):
            pos = consumed = m.end()
            continue
        break
    return value[consumed:].strip()


def find_apps_block(nodes: list[vdf.VdfNode]) -> vdf.VdfNode | None:
    """Locate ``UserLocalConfigStore/Software/Valve/Steam/apps``.

    Key case varies between Steam versions, so matching is case-insensitive.
    Falls back to the first ``apps`` block anywhere in the document.
    """
    level: list[vdf.VdfNode] = nodes
    node: vdf.VdfNode | None = None
    for key in _APPS_PATH:
        node = vdf.find(level, key, ignore_case=True)
        if node is None or not node.is_block:
            node = None
            break
        level = node.children
    if node is not None:
        return node

    for candidate in vdf.walk(nodes):
        if candidate.is_block and candidate.key.lower() == "apps":
            logger.warning("Steam apps block not at the usual path; using fallback match")
            return candidate
    return None


def steam_running() -> bool:
    try:
        for proc in psutil.process_iter(["name"]):
            if proc.info.get("name") in _STEAM_PROCESS_NAMES:
                return True
    except psutil.Error:
        logger.debug("Could not enumerate processes", exc_info=True)
    return False


def _next_is_managed(value: str, pos: int) -> bool:
    m = _TOKEN_RE.match(value, pos)
    if m is None:
        return False
    name, sep, _ = m.group(1).partition("=")
    return bool(sep) and name in MANAGED_VARIABLES


def _insert_before_close(text: str, close: int, line: str) -> str:
    """Insert *line* as the last entry of the block closing at *close*."""
    line_start = text.rfind("\n", 0, close) + 1
    close_indent = text[line_start:close]
    if close_indent.strip():
        # Closing brace shares its line with other content.
        inner = vdf.line_indent(text, close) + "\t"
        return f"{text[:close]}\n{inner}{line}\n{vdf.line_indent(text, close)}{text[close:]}"
    inner = close_indent + "\t"
    return f"{text[:line_start]}{inner}{line}\n{text[line_start:]}"

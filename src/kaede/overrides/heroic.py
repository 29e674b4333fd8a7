"""Heroic: per-game environment options in ``GamesConfig/<app>.json``."""

from __future__ import annotations

import json
import logging
from collections.abc import Collection
from pathlib import Path
from typing import Any

from kaede.base import AppEntry, EnvVarSet, IntegrationKind, LocateError, ParseError
from kaede.overrides.base import FileOverrideHandler, Mutation, read_target
from kaede.resolver import MANAGED_VARIABLES

logger = logging.getLogger(__name__)

# Heroic's own (misspelled) key.
ENV_FIELD = "enviromentOptions"
# Older top-level table; kept in step with the per-game list when present.
TOP_LEVEL_FIELD = "envVariables"


class HeroicOverrideHandler(FileOverrideHandler):
    kind = IntegrationKind.HEROIC_GAME

    def locate(self, entry: AppEntry) -> Path:
        if not entry.heroic_app_name:
            raise LocateError(f"{entry.app_id} has no Heroic app name")
        if entry.heroic_config is None:
            raise LocateError(f"Heroic config not found for {entry.heroic_app_name}")
        return entry.heroic_config

    def mutate(self, entry: AppEntry, target: Path, env: EnvVarSet | None) -> Mutation:
        raw = read_target(target, "Heroic config")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Malformed JSON in {target}: {exc}", target=target) from exc
        if not isinstance(data, dict):
            raise ParseError(f"{target}: top level is not a JSON object", target=target)

        game_id = entry.heroic_app_name or ""
        game = data.get(game_id)
        if not isinstance(game, dict):
            raise LocateError(f"{target} has no object for game {game_id!r}", target=target)

        sections = [(game, ENV_FIELD, "key")]
        if TOP_LEVEL_FIELD in data:
            sections.append((data, TOP_LEVEL_FIELD, "name"))

        changed = False
        try:
            for container, field, key_field in sections:
                if env is None:
                    changed |= remove_env(container, MANAGED_VARIABLES, field=field)
                else:
                    changed |= merge_env(container, env, field=field, key_field=key_field)
        except ValueError as exc:
            raise ParseError(f"{target}: {exc}", target=target) from exc

        if env is None:
            message = f"Managed variables removed for {game_id}"
        else:
            message = f"Environment for {game_id} set to {', '.join(env.assignments())}"
        if not changed:
            return Mutation(payload=raw, changed=False, message=f"Heroic config for {game_id} already up to date")
        return Mutation(payload=dumps(data), changed=True, message=message)


def dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def merge_env(
    container: dict[str, Any],
    env: EnvVarSet,
    *,
    field: str = ENV_FIELD,
    key_field: str = "key",
) -> bool:
    """Make kaede's variables in ``container[field]`` exactly *env*.

    Managed variables missing from *env* are removed first, so switching
    GPUs leaves nothing of the previous choice behind. Keys in both are
    overwritten; user keys stay. Both the list-of-``{"key", "value"}`` and
    the mapping shapes are accepted. Returns whether anything changed.
    """
    stale = [name for name in MANAGED_VARIABLES if name not in env]
    changed = remove_env(container, stale, field=field)

    options = container.get(field)
    if options is None:
        options = []
        container[field] = options

    if isinstance(options, dict):
        for name, value in env.items():
            if options.get(name) != value:
                options[name] = value
                changed = True
        return changed

    if not isinstance(options, list):
        raise ValueError(f"{field} is neither a list nor an object")

    for name, value in env.items():
        found = False
        for i, item in enumerate(options):
            if _entry_name(item) != name:
                continue
            found = True
            if isinstance(item, dict):
                if item.get("value") != value:
                    item["value"] = value
                    changed = True
            elif item != f"{name}={value}":
                # Older configs store plain "NAME=value" strings.
                options[i] = f"{name}={value}"
                changed = True
        if not found:
            options.append({key_field: name, "value": value})
            changed = True
    return changed


def remove_env(container: dict[str, Any], names: Collection[str], *, field: str = ENV_FIELD) -> bool:
    options = container.get(field)
    if options is None or not names:
        return False
    if isinstance(options, dict):
        removed = [n for n in names if n in options]
        for name in removed:
            del options[name]
        return bool(removed)
    if not isinstance(options, list):
        raise ValueError(f"{field} is neither a list nor an object")
    kept = [item for item in options if _entry_name(item) not in names]
    if len(kept) == len(options):
        return False
    container[field] = kept
    return True


def read_env(container: dict[str, Any], *, field: str = ENV_FIELD) -> dict[str, str]:
    """Flatten ``container[field]`` to ``{name: value}``."""
    options = container.get(field)
    if isinstance(options, dict):
        return {str(k): str(v) for k, v in options.items()}
    result: dict[str, str] = {}
    for item in options or []:
        if isinstance(item, str):
            name, sep, value = item.partition("=")
            if sep:
                result[name] = value
        elif isinstance(item, dict):
            name = _entry_name(item)
            if name is not None and "value" in item:
                result[name] = str(item["value"])
    return result


def _entry_name(item: Any) -> str | None:
    if isinstance(item, dict):
        name = item.get("key", item.get("name"))
        return name if isinstance(name, str) else None
    if isinstance(item, str):
        return item.partition("=")[0]
    return None

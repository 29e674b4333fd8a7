"""Native apps: a user-level desktop entry that shadows the system one."""

from __future__ import annotations

import logging
from pathlib import Path

from kaede import desktop_entry
from kaede.base import AppEntry, CommitError, EnvVarSet, IntegrationKind, LocateError
from kaede.overrides.base import Mutation, OverrideHandler, atomic_write, read_target

logger = logging.getLogger(__name__)


def default_user_applications_dir() -> Path:
    return Path.home() / ".local/share/applications"


class DesktopOverrideHandler(OverrideHandler):
    """Writes ``<user applications dir>/<app id>`` with a rewritten ``Exec=``.

    The source entry is never edited. Each apply regenerates the override
    from the source, so re-applying replaces the previous override instead
    of wrapping it again. Files at the target path that kaede did not write
    are never touched.
    """

    kind = IntegrationKind.NATIVE_DESKTOP

    def __init__(self, user_applications_dir: Path | None = None) -> None:
        self._user_dir = user_applications_dir or default_user_applications_dir()

    def locate(self, entry: AppEntry) -> Path:
        return self._user_dir / entry.app_id

    def mutate(self, entry: AppEntry, target: Path, env: EnvVarSet | None) -> Mutation:
        source_is_target = _same_file(entry.desktop_path, target)
        existing = _read_existing(target)
        if existing is not None and not desktop_entry.is_managed(existing):
            if env:
                raise LocateError(
                    f"Refusing to overwrite unmanaged desktop entry {target}", target=target
                )
            return Mutation(payload=existing, changed=False, message=f"{target} is not managed by kaede")

        if not env:
            if existing is None:
                return Mutation(payload=None, changed=False, message=f"No override at {target}")
            return Mutation(payload=None, changed=True, message=f"Removed override {target}")

        source = existing if source_is_target and existing is not None else read_target(
            entry.desktop_path, "desktop entry"
        )
        group = desktop_entry.read_main_group(source)
        original = group.get(desktop_entry.ORIGINAL_EXEC_KEY) if source_is_target else None
        original = original or group.get("Exec")
        if not original:
            raise LocateError(f"{entry.desktop_path} has no Exec line", target=entry.desktop_path)

        content = desktop_entry.rewrite(
            source,
            {
                "Exec": desktop_entry.wrap_exec(original, env.assignments()),
                desktop_entry.MANAGED_KEY: "true",
                desktop_entry.ORIGINAL_EXEC_KEY: original,
            },
        )
        if content == existing:
            return Mutation(payload=content, changed=False, message=f"{target} already up to date")
        return Mutation(payload=content, changed=True, message=f"Wrote override {target}")

    def commit(self, target: Path, mutation: Mutation) -> None:
        if mutation.payload is None:
            try:
                target.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                raise CommitError(f"Failed to remove {target}: {exc}", target=target) from exc
            return
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CommitError(f"Cannot create {target.parent}: {exc}", target=target) from exc
        atomic_write(target, mutation.payload)


def _read_existing(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise LocateError(f"Cannot read {path}: {exc}", target=path) from exc


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False

"""Override handler protocol and the shared write/backup discipline."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import stat
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from kaede.base import (
    AppEntry,
    CommitError,
    EnvVarSet,
    IntegrationKind,
    LocateError,
    OverrideResult,
)

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".kaede.bak"


@dataclass(frozen=True, slots=True)
class Mutation:
    """Planned change for one target; computed without touching disk.

    ``payload`` is handler-specific: new file text, ``None`` to remove the
    target, or an argument vector for command-backed handlers.
    """

    payload: Any
    changed: bool
    message: str


class OverrideHandler(ABC):
    """One integration kind's Locate -> Backup -> Mutate -> Commit cycle.

    ``env=None`` passed to :meth:`mutate` means reset: remove every variable
    kaede manages and leave the rest of the target alone.
    """

    kind: ClassVar[IntegrationKind]

    @abstractmethod
    def locate(self, entry: AppEntry) -> Path | str:
        """Return the file path or command that will be mutated."""

    @abstractmethod
    def mutate(self, entry: AppEntry, target: Any, env: EnvVarSet | None) -> Mutation:
        """Read current state and plan the change. Must not write."""

    @abstractmethod
    def commit(self, target: Any, mutation: Mutation) -> None:
        """Make the planned change durable, atomically."""

    def backup(self, target: Any) -> Path | None:
        """Snapshot *target* before the first write. Default: no backup."""
        return None

    def run(self, entry: AppEntry, env: EnvVarSet | None) -> OverrideResult:
        target = self.locate(entry)
        mutation = self.mutate(entry, target, env)
        if not mutation.changed:
            logger.debug("%s: %s", target, mutation.message)
            return self._result(entry, target, mutation)

        backup_path = self.backup(target)
        self.commit(target, mutation)
        logger.info("%s override written to %s", self.kind.value, target)
        return self._result(entry, target, mutation, backup_path)

    def reset(self, entry: AppEntry) -> OverrideResult:
        """Remove every variable kaede manages from the target."""
        return self.run(entry, None)

    def _result(
        self,
        entry: AppEntry,
        target: Path | str,
        mutation: Mutation,
        backup_path: Path | None = None,
    ) -> OverrideResult:
        return OverrideResult(
            app_id=entry.app_id,
            kind=self.kind,
            target=str(target),
            success=True,
            message=mutation.message,
            changed=mutation.changed,
            backup_path=backup_path,
        )


class FileOverrideHandler(OverrideHandler):
    """Handler whose target is a text file edited in place (Steam, Heroic)."""

    def backup(self, target: Path) -> Path | None:
        return backup_once(target)

    def commit(self, target: Path, mutation: Mutation) -> None:
        atomic_write(target, mutation.payload)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def read_target(path: Path | None, what: str) -> str:
    """Read a target file; missing or unreadable raises :class:`LocateError`."""
    if path is None:
        raise LocateError(f"No {what} located")
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LocateError(f"{what} not found: {path}", target=path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise LocateError(f"Cannot read {what} {path}: {exc}", target=path) from exc


def backup_once(path: Path) -> Path | None:
    """Copy *path* to ``<path>.kaede.bak`` unless that backup already exists.

    Returns the backup path when one was created, else ``None``. The first
    backup is never overwritten, so it always holds the pre-kaede state.
    The copy lands under a temporary name and is renamed into place, so a
    failed copy never leaves a partial backup behind.
    """
    backup = backup_path_for(path)
    if backup.exists():
        return None
    tmp_name: str | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{backup.name}.", suffix=".tmp")
        os.close(fd)
        shutil.copy2(path, tmp_name)
        os.replace(tmp_name, backup)
    except OSError as exc:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
        raise CommitError(f"Failed to back up {path} to {backup}: {exc}", target=path) from exc
    logger.info("Backup created: %s", backup)
    return backup


def atomic_write(path: Path, text: str) -> None:
    """Replace *path* with *text* via a same-directory temp file and rename.

    Permission bits of an existing target are preserved. On failure the
    target is untouched and the temp file is removed.
    """
    try:
        mode: int | None = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = None
    except OSError as exc:
        raise CommitError(f"Cannot stat {path}: {exc}", target=path) from exc

    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError as exc:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
        raise CommitError(f"Failed to write {path}: {exc}", target=path) from exc

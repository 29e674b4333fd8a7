"""Per-integration override handlers and the engine that dispatches to them."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from kaede.base import (
    AppEntry,
    EnvVarSet,
    IntegrationKind,
    KaedeError,
    OverrideError,
    OverrideResult,
)
from kaede.overrides.base import (
    BACKUP_SUFFIX,
    FileOverrideHandler,
    Mutation,
    OverrideHandler,
    atomic_write,
    backup_once,
    backup_path_for,
)
from kaede.overrides.desktop import DesktopOverrideHandler
from kaede.overrides.flatpak import FlatpakOverrideHandler
from kaede.overrides.heroic import HeroicOverrideHandler
from kaede.overrides.steam import SteamOverrideHandler
from kaede.runner import CommandRunner

__all__ = [
    "BACKUP_SUFFIX",
    "DesktopOverrideHandler",
    "FileOverrideHandler",
    "FlatpakOverrideHandler",
    "HeroicOverrideHandler",
    "Mutation",
    "OverrideEngine",
    "OverrideHandler",
    "SteamOverrideHandler",
    "atomic_write",
    "backup_once",
    "backup_path_for",
    "default_handlers",
]

logger = logging.getLogger(__name__)


def default_handlers(
    runner: CommandRunner | None = None,
    user_applications_dir: Path | None = None,
) -> dict[IntegrationKind, OverrideHandler]:
    """One handler per integration kind."""
    return {
        IntegrationKind.NATIVE_DESKTOP: DesktopOverrideHandler(user_applications_dir),
        IntegrationKind.FLATPAK: FlatpakOverrideHandler(runner),
        IntegrationKind.STEAM_GAME: SteamOverrideHandler(),
        IntegrationKind.HEROIC_GAME: HeroicOverrideHandler(),
    }


class OverrideEngine:
    """Applies an environment set to an app through the handler for its kind.

    Errors from a handler come back as a failed :class:`OverrideResult`
    naming the target; call :meth:`OverrideResult.raise_for_error` to turn
    one back into an exception.
    """

    def __init__(
        self,
        handlers: Mapping[IntegrationKind, OverrideHandler] | None = None,
        *,
        runner: CommandRunner | None = None,
        user_applications_dir: Path | None = None,
    ) -> None:
        if handlers is None:
            handlers = default_handlers(runner, user_applications_dir)
        self._handlers = dict(handlers)

    def handler_for(self, kind: IntegrationKind) -> OverrideHandler:
        try:
            return self._handlers[kind]
        except KeyError:
            raise OverrideError(f"No override handler for {kind.value} apps") from None

    def apply(self, entry: AppEntry, env: EnvVarSet) -> OverrideResult:
        logger.debug("Applying %r to %s (%s)", env, entry.app_id, entry.kind.value)
        try:
            result = self.handler_for(entry.kind).run(entry, env)
        except KaedeError as exc:
            return self._failure(entry, exc)
        self._drop_desktop_override(entry)
        return result

    def reset(self, entry: AppEntry) -> OverrideResult:
        logger.debug("Resetting %s (%s)", entry.app_id, entry.kind.value)
        try:
            result = self.handler_for(entry.kind).reset(entry)
        except KaedeError as exc:
            return self._failure(entry, exc)
        self._drop_desktop_override(entry)
        return result

    def _drop_desktop_override(self, entry: AppEntry) -> None:
        """Remove a kaede desktop override left behind for a Steam game.

        Steam games take their variables from LaunchOptions only. Entries
        at the override path that kaede did not write are left alone.
        """
        if entry.kind is not IntegrationKind.STEAM_GAME:
            return
        desktop = self._handlers.get(IntegrationKind.NATIVE_DESKTOP)
        if desktop is None:
            return
        try:
            cleared = desktop.reset(entry)
        except KaedeError as exc:
            logger.warning("Could not remove desktop override for %s: %s", entry.app_id, exc)
            return
        if cleared.changed:
            logger.info("Removed leftover desktop override %s", cleared.target)

    @staticmethod
    def _failure(entry: AppEntry, exc: KaedeError) -> OverrideResult:
        target = exc.target if isinstance(exc, OverrideError) else None
        logger.error("Override for %s failed: %s", entry.app_id, exc)
        return OverrideResult(
            app_id=entry.app_id,
            kind=entry.kind,
            target=target,
            success=False,
            message=str(exc),
            error=exc,
        )

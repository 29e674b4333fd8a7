"""Flatpak: delegate to ``flatpak override --user``."""

from __future__ import annotations

import logging

from kaede.base import (
    AppEntry,
    CommitError,
    EnvVarSet,
    IntegrationKind,
    LocateError,
)
from kaede.overrides.base import Mutation, OverrideHandler
from kaede.resolver import MANAGED_VARIABLES
from kaede.runner import CommandRunner

logger = logging.getLogger(__name__)

FLATPAK = "flatpak"


class FlatpakOverrideHandler(OverrideHandler):
    """Builds one batched ``flatpak override`` call per apply.

    Flatpak keeps its own per-user override store, and every ``--env`` can be
    undone with ``--unset-env``, so no backup is taken here.
    """

    kind = IntegrationKind.FLATPAK

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner or CommandRunner()

    def locate(self, entry: AppEntry) -> str:
        if not entry.flatpak_app_id:
            raise LocateError(f"{entry.app_id} has no Flatpak app id")
        if not self._runner.available(FLATPAK):
            raise LocateError("flatpak command not found", target=FLATPAK)
        return entry.flatpak_app_id

    def mutate(self, entry: AppEntry, target: str, env: EnvVarSet | None) -> Mutation:
        argv = build_override_argv(target, env)
        if env:
            message = f"Flatpak override for {target}: {', '.join(env.assignments())}"
        else:
            message = f"Managed variables unset for {target}"
        return Mutation(payload=argv, changed=True, message=message)

    def commit(self, target: str, mutation: Mutation) -> None:
        argv: list[str] = mutation.payload
        command = " ".join(argv)
        out = self._runner.run(argv)
        if out is None:
            raise LocateError("flatpak command not found", target=command)
        if out.timed_out:
            raise CommitError(f"'{command}' timed out", target=command)
        if out.returncode != 0:
            detail = out.stderr.strip() or f"exit status {out.returncode}"
            raise CommitError(f"'{command}' failed: {detail}", target=command)
        logger.debug("flatpak override succeeded for %s", target)


def build_override_argv(app_id: str, env: EnvVarSet | None) -> list[str]:
    """``flatpak override --user`` arguments that leave exactly *env* set.

    Managed variables absent from *env* are unset in the same call, so a
    previous GPU choice never lingers. ``None`` or an empty set unsets them all.
    """
    env = env or EnvVarSet()
    args = [f"--unset-env={name}" for name in MANAGED_VARIABLES if name not in env]
    args.extend(f"--env={assignment}" for assignment in env.assignments())
    return [FLATPAK, "override", "--user", *args, app_id]

"""Bounded-time invocation of external commands.

Diagnostic probes (``lspci``, ``glxinfo``, ``vulkaninfo``) and the Flatpak
override mechanism are reached only through :class:`CommandRunner`, so tests
can substitute canned output and the rest of the package never assumes a
binary exists.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0  # seconds


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Raw result of one command invocation."""

    returncode: int
    stdout: str
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class CommandRunner:
    """Runs external commands with a timeout.

    ``run`` returns ``None`` when the binary is not installed; a command that
    exceeds the timeout yields a ``CommandOutput`` with ``timed_out=True``.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def available(self, program: str) -> bool:
        return shutil.which(program) is not None

    def run(
        self,
        argv: Sequence[str],
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandOutput | None:
        if not argv:
            raise ValueError("argv must not be empty")
        if not self.available(argv[0]):
            logger.debug("%s not found on PATH", argv[0])
            return None

        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        limit = self.timeout if timeout is None else timeout
        try:
            proc = subprocess.run(
                list(argv),
                env=full_env,
                capture_output=True,
                text=True,
                timeout=limit,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning("%s did not finish within %.1fs", argv[0], limit)
            return CommandOutput(returncode=-1, stdout="", timed_out=True)
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("Failed to execute %s: %s", argv[0], exc)
            return None

        return CommandOutput(
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

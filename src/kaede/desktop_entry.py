"""Minimal freedesktop desktop-entry reading and Exec rewriting."""

from __future__ import annotations

import re
from collections.abc import Sequence

MAIN_GROUP = "[Desktop Entry]"
MANAGED_KEY = "X-Kaede-Managed"
ORIGINAL_EXEC_KEY = "X-Kaede-Original-Exec"

_FIELD_CODES = ("%f", "%F", "%u", "%U", "%i", "%c", "%k")
_TOKEN_RE = re.compile(r"\S+")


def read_main_group(text: str) -> dict[str, str]:
    """Return the key/value pairs of the ``[Desktop Entry]`` group.

    Localized keys (``Name[de]``) are kept verbatim; the first occurrence of
    a key wins.
    """
    values: dict[str, str] = {}
    in_main = False
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            in_main = line == MAIN_GROUP
            continue
        if not in_main:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        values.setdefault(key.strip(), value.strip())
    return values


def is_managed(text: str) -> bool:
    return read_main_group(text).get(MANAGED_KEY, "").lower() == "true"


def strip_field_codes(exec_line: str) -> str:
    for code in _FIELD_CODES:
        exec_line = exec_line.replace(code, "")
    return " ".join(exec_line.split())


def is_flatpak_run(exec_line: str) -> bool:
    return _flatpak_run_position(exec_line.split()) is not None


def wrap_exec(exec_line: str, assignments: Sequence[str]) -> str:
    """Prefix *assignments* onto *exec_line*.

    ``flatpak run`` lines get ``--env=`` options (the sandbox does not inherit
    the host environment); everything else is wrapped with ``env``.
    """
    if not assignments:
        return exec_line
    tokens = list(_TOKEN_RE.finditer(exec_line))
    pos = _flatpak_run_position([m.group() for m in tokens])
    if pos is not None:
        end = tokens[pos + 1].end()
        env_args = " ".join(f"--env={a}" for a in assignments)
        return f"{exec_line[:end]} {env_args}{exec_line[end:]}"
    return f"env {' '.join(assignments)} {exec_line}"


def rewrite(text: str, updates: dict[str, str]) -> str:
    """Set keys of the main group, replacing existing lines in place.

    Keys not already present are appended at the end of the main group.
    Lines of other groups are left as they are.
    """
    out: list[str] = []
    pending = dict(updates)
    in_main = False
    seen_main = False

    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            if in_main:
                _insert_before_trailing_blank(out, pending)
            in_main = stripped == MAIN_GROUP
            seen_main = seen_main or in_main
            out.append(line)
            continue
        if in_main and not stripped.startswith("#"):
            key, sep, _ = stripped.partition("=")
            key = key.strip()
            if sep and key in updates:
                if key in pending:
                    out.append(f"{key}={pending.pop(key)}")
                continue  # drop duplicates of an updated key
        out.append(line)

    if in_main:
        _insert_before_trailing_blank(out, pending)
    if not seen_main:
        out[0:0] = [MAIN_GROUP, *(f"{k}={v}" for k, v in pending.items())]
    return "\n".join(out) + "\n"


def _insert_before_trailing_blank(out: list[str], pending: dict[str, str]) -> None:
    idx = len(out)
    while idx > 0 and not out[idx - 1].strip():
        idx -= 1
    out[idx:idx] = [f"{k}={v}" for k, v in pending.items()]
    pending.clear()


def _flatpak_run_position(parts: Sequence[str]) -> int | None:
    for i in range(len(parts) - 1):
        a, b = parts[i], parts[i + 1]
        if (a == "flatpak" or a.endswith("/flatpak")) and b == "run":
            return i
    return None

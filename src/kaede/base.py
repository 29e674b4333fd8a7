"""Core data types and exception hierarchy."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

# --- Exceptions ---


class KaedeError(Exception):
    """Base exception for all kaede errors."""


class DiscoveryError(KaedeError):
    """No GPU-like device node was found."""


class ProbeError(KaedeError):
    """Neither the OpenGL nor the Vulkan renderer probe is available."""


class ConfigError(KaedeError):
    """Configuration loading or validation failure."""


class OverrideError(KaedeError):
    """An override could not be applied to its target."""

    def __init__(self, message: str, target: str | Path | None = None) -> None:
        super().__init__(message)
        self.target = str(target) if target is not None else None


class LocateError(OverrideError):
    """Target file missing/unreadable, or external command absent."""


class ParseError(OverrideError):
    """Existing target content is malformed. Raised before any write."""


class CommitError(OverrideError):
    """Writing, renaming, backing up or invoking the target failed."""


# --- Enums ---


class VendorClass(enum.Enum):
    MESA = "mesa"
    NVIDIA = "nvidia"
    UNKNOWN = "unknown"


class GraphicsApi(enum.Enum):
    OPENGL = "opengl"
    VULKAN = "vulkan"


class IntegrationKind(enum.Enum):
    NATIVE_DESKTOP = "native"
    FLATPAK = "flatpak"
    STEAM_GAME = "steam"
    HEROIC_GAME = "heroic"


# --- Data Types (frozen, slotted) ---


@dataclass(frozen=True, slots=True)
class GpuDevice:
    """Snapshot of one GPU as seen by a single inventory scan."""

    card: str
    index: int  # DRI_PRIME index: position in card-number order
    bus_address: str | None
    model: str
    vendor_class: VendorClass = VendorClass.UNKNOWN
    vendor_id: str | None = None  # "0x10de"
    device_id: str | None = None
    driver: str | None = None
    render_node: str | None = None
    pci_description: str | None = None


@dataclass(frozen=True, slots=True)
class RendererInfo:
    """Which GPU/driver currently serves rendering for one API."""

    api: GraphicsApi
    renderer: str
    driver: str | None = None
    device: GpuDevice | None = None


@dataclass(frozen=True, slots=True)
class AppEntry:
    """A launchable application and the locator for its override target."""

    app_id: str
    name: str
    exec: str
    kind: IntegrationKind
    desktop_path: Path
    icon: str | None = None
    flatpak_app_id: str | None = None
    steam_app_id: str | None = None
    steam_config: Path | None = None
    heroic_app_name: str | None = None
    heroic_platform: str | None = None
    heroic_config: Path | None = None


@dataclass(frozen=True, slots=True)
class GpuSelection:
    """User decision: run *app_id* on the GPU at bus address *gpu*."""

    app_id: str
    gpu: str
    api: GraphicsApi | None = None


class EnvVarSet(Mapping[str, str]):
    """Immutable, ordered set of environment variable assignments.

    Keys are unique: building a set where one name carries two different
    values raises ``ValueError``. Repeating an identical pair is allowed.
    """

    __slots__ = ("_items",)

    def __init__(self, pairs: Iterable[tuple[str, str]] | Mapping[str, str] = ()) -> None:
        if isinstance(pairs, Mapping):
            pairs = pairs.items()
        items: dict[str, str] = {}
        for name, value in pairs:
            if not name or "=" in name or any(c.isspace() for c in name):
                raise ValueError(f"Invalid environment variable name: {name!r}")
            value = str(value)
            if name in items and items[name] != value:
                raise ValueError(
                    f"Conflicting values for {name}: {items[name]!r} and {value!r}"
                )
            items[name] = value
        self._items = items

    def __getitem__(self, key: str) -> str:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EnvVarSet):
            return list(self._items.items()) == list(other._items.items())
        if isinstance(other, Mapping):
            return dict(self._items) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._items.items()))

    def __repr__(self) -> str:
        return f"EnvVarSet({self._items!r})"

    def names(self) -> list[str]:
        return list(self._items)

    def assignments(self) -> list[str]:
        """Return ``["NAME=value", ...]`` in insertion order."""
        return [f"{k}={v}" for k, v in self._items.items()]

    def with_pairs(self, pairs: Iterable[tuple[str, str]]) -> EnvVarSet:
        """Return a new set with *pairs* appended."""
        return EnvVarSet([*self._items.items(), *pairs])


@dataclass(frozen=True, slots=True)
class OverrideResult:
    """Outcome of one apply/reset operation."""

    app_id: str
    kind: IntegrationKind
    target: str | None
    success: bool
    message: str
    changed: bool = False
    backup_path: Path | None = None
    error: KaedeError | None = None

    def raise_for_error(self) -> None:
        """Re-raise the captured error, if any."""
        if self.error is not None:
            raise self.error

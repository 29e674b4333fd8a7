"""GPU inventory from /sys/class/drm, enriched by lspci and NVML.

Hardware presence under sysfs is authoritative. Names and vendor class come
from best-effort enrichment: when ``lspci`` or NVML are unavailable, the
cards are still reported.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import pynvml  # type: ignore[import-untyped]

from kaede.base import DiscoveryError, GpuDevice, VendorClass
from kaede.runner import CommandRunner

logger = logging.getLogger(__name__)

_CARD_RE = re.compile(r"^card(\d+)$")
_GPU_CLASS_MARKERS = ("VGA compatible controller", "3D controller", "Display controller")
_REV_RE = re.compile(r"\s*\(rev [0-9a-fA-F]+\)\s*$")
_PCI_ID_RE = re.compile(r"\s*\[[0-9a-fA-F]{4}:[0-9a-fA-F]{4}\]")

_MESA_DRIVERS = frozenset({"amdgpu", "radeon", "i915", "xe", "nouveau", "virtio_gpu", "iris"})
# AMD and Intel only ship Mesa userspace drivers on Linux.
_MESA_VENDOR_IDS = frozenset({"0x1002", "0x8086"})


def scan(
    runner: CommandRunner | None = None,
    *,
    sysfs_root: str | Path = "/sys",
    dev_root: str | Path = "/dev",
    use_nvml: bool = True,
) -> tuple[GpuDevice, ...]:
    """Enumerate GPUs, ordered by DRM card number.

    Raises :class:`DiscoveryError` if no ``card*`` node exists.
    """
    runner = runner or CommandRunner()
    drm_dir = Path(sysfs_root) / "class" / "drm"

    try:
        names = os.listdir(drm_dir)
    except OSError as exc:
        raise DiscoveryError(f"Cannot list {drm_dir}: {exc}") from exc

    cards = sorted(
        (int(m.group(1)), name) for name in names if (m := _CARD_RE.match(name))
    )
    if not cards:
        raise DiscoveryError(f"No GPU device nodes found under {drm_dir}")

    lspci = read_lspci(runner)
    fallback_nodes = _render_nodes_from_dev(Path(dev_root))

    raw: list[dict[str, str | None]] = []
    for position, (_, card) in enumerate(cards):
        info = _read_card(drm_dir / card)
        if info["render_node"] is None and position < len(fallback_nodes):
            info["render_node"] = fallback_nodes[position]
        info["card"] = card
        info["pci_description"] = lspci.get(info["bus_address"] or "")
        raw.append(info)

    nvml_names: dict[str, str] = {}
    if use_nvml and any(_looks_nvidia(i) and not i["pci_description"] for i in raw):
        nvml_names = read_nvml_names()

    devices: list[GpuDevice] = []
    for index, info in enumerate(raw):
        card = info["card"] or f"card{index}"
        description = info["pci_description"]
        model = _model_from_description(description) if description else None
        if model is None:
            model = nvml_names.get(info["bus_address"] or "")
        vendor_class = classify_vendor(info["driver"], info["vendor_id"], description or model)
        devices.append(
            GpuDevice(
                card=card,
                index=index,
                bus_address=info["bus_address"],
                model=model or card,
                vendor_class=vendor_class,
                vendor_id=info["vendor_id"],
                device_id=info["device_id"],
                driver=info["driver"],
                render_node=info["render_node"],
                pci_description=description,
            )
        )
        logger.debug("Found %s (%s) as DRI_PRIME=%d", card, vendor_class.value, index)

    return tuple(devices)


def classify_vendor(
    driver: str | None, vendor_id: str | None, description: str | None
) -> VendorClass:
    """Map a kernel driver / PCI vendor / device description to a vendor class."""
    drv = (driver or "").lower()
    if drv == "nvidia":
        return VendorClass.NVIDIA
    if drv in _MESA_DRIVERS:
        return VendorClass.MESA

    if vendor_id and vendor_id.lower() in _MESA_VENDOR_IDS:
        return VendorClass.MESA

    text = (description or "").lower()
    if "nvidia" in text:
        return VendorClass.NVIDIA
    if any(tok in text for tok in ("advanced micro devices", "amd", "ati ", "intel")):
        return VendorClass.MESA
    return VendorClass.UNKNOWN


def normalize_bus_address(slot: str) -> str:
    """Return ``dddd:bb:dd.f`` for ``bb:dd.f`` or ``dddddddd:bb:dd.f`` input."""
    slot = slot.strip().lower()
    parts = slot.split(":")
    if len(parts) == 2:
        return f"0000:{slot}"
    if len(parts) == 3:
        try:
            domain = int(parts[0], 16)
        except ValueError:
            return slot
        return f"{domain:04x}:{parts[1]}:{parts[2]}"
    return slot


def parse_lspci(output: str) -> dict[str, str]:
    """Parse ``lspci -D -nn`` output into ``{bus_address: description}``."""
    result: dict[str, str] = {}
    for line in output.splitlines():
        if not any(marker in line for marker in _GPU_CLASS_MARKERS):
            continue
        slot, _, description = line.partition(" ")
        if slot and description:
            result[normalize_bus_address(slot)] = description.strip()
    return result


def read_lspci(runner: CommandRunner) -> dict[str, str]:
    out = runner.run(["lspci", "-D", "-nn"])
    if out is None or not out.ok:
        logger.warning("lspci unavailable; GPU names will not be resolved")
        return {}
    return parse_lspci(out.stdout)


def read_nvml_names() -> dict[str, str]:
    """Map bus address -> NVML device name. Empty on any NVML failure."""
    names: dict[str, str] = {}
    try:
        pynvml.nvmlInit()
    except pynvml.NVMLError as err:
        logger.debug("NVML unavailable: %s", err)
        return names
    try:
        for idx in range(pynvml.nvmlDeviceGetCount()):
            handle = pynvml.nvmlDeviceGetHandleByIndex(idx)
            pci = pynvml.nvmlDeviceGetPciInfo(handle)
            bus_id = pci.busId.decode() if isinstance(pci.busId, bytes) else pci.busId
            name = pynvml.nvmlDeviceGetName(handle)
            if isinstance(name, bytes):
                name = name.decode()
            names[normalize_bus_address(bus_id)] = name
    except pynvml.NVMLError as err:
        logger.debug("NVML query failed: %s", err)
    finally:
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError:
            logger.debug("nvmlShutdown failed")
    return names


# ---------------------------------------------------------------------------
# sysfs helpers
# ---------------------------------------------------------------------------


def _read_card(card_dir: Path) -> dict[str, str | None]:
    device = card_dir / "device"
    info: dict[str, str | None] = {
        "bus_address": None,
        "vendor_id": _read_trimmed(device / "vendor"),
        "device_id": _read_trimmed(device / "device"),
        "driver": None,
        "render_node": None,
    }

    uevent = _read_trimmed(device / "uevent") or ""
    for line in uevent.splitlines():
        key, _, value = line.partition("=")
        if key == "PCI_SLOT_NAME" and value:
            info["bus_address"] = normalize_bus_address(value)
        elif key == "DRIVER" and value:
            info["driver"] = value

    try:
        info["driver"] = os.path.basename(os.readlink(device / "driver"))
    except OSError:
        pass

    try:
        for node in sorted(os.listdir(device / "drm")):
            if node.startswith("renderD"):
                info["render_node"] = f"/dev/dri/{node}"
                break
    except OSError:
        logger.debug("No drm directory under %s", device)

    return info


def _render_nodes_from_dev(dev_root: Path) -> list[str]:
    try:
        entries = os.listdir(dev_root / "dri")
    except OSError:
        return []
    return sorted(f"/dev/dri/{e}" for e in entries if e.startswith("renderD"))


def _read_trimmed(path: Path) -> str | None:
    try:
        return path.read_text().strip()
    except (OSError, UnicodeDecodeError):
        return None


def _looks_nvidia(info: dict[str, str | None]) -> bool:
    return (info["vendor_id"] or "").lower() == "0x10de" or info["driver"] == "nvidia"


def _model_from_description(description: str) -> str:
    # "VGA compatible controller [0300]: NVIDIA Corporation GA106 [10de:2503] (rev a1)"
    _, sep, model = description.partition(": ")
    model = model if sep else description
    return _PCI_ID_RE.sub("", _REV_RE.sub("", model)).strip()

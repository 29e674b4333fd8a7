"""Active renderer detection: glxinfo first, vulkaninfo as fallback."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from kaede.base import GpuDevice, GraphicsApi, ProbeError, RendererInfo
from kaede.runner import CommandRunner

logger = logging.getLogger(__name__)

_HEX_ID_RE = re.compile(r"\((0x[0-9a-fA-F]{4})\)\s*$")
_VK_FIELD_RE = re.compile(r"^\s*(\w+)\s*=\s*(.*?)\s*$")
_VK_GPU_RE = re.compile(r"^GPU\d+:\s*$")


def probe(
    runner: CommandRunner | None = None,
    *,
    devices: Sequence[GpuDevice] = (),
    prime_index: int | None = None,
) -> RendererInfo:
    """Return the renderer serving the (optionally DRI_PRIME-selected) GPU.

    Tries OpenGL first, then Vulkan; the first successful probe wins.
    Raises :class:`ProbeError` if neither yields a renderer.
    """
    runner = runner or CommandRunner()
    env = {"DRI_PRIME": str(prime_index)} if prime_index is not None else None

    out = runner.run(["glxinfo", "-B"], env=env)
    if out is not None and out.ok:
        info = parse_glxinfo(out.stdout, devices)
        if info is not None:
            return info
        logger.debug("glxinfo output had no renderer string")
    else:
        logger.debug("glxinfo unavailable or failed; falling back to vulkaninfo")

    out = runner.run(["vulkaninfo", "--summary"], env=env)
    if out is not None and out.ok:
        info = parse_vulkaninfo(out.stdout, devices)
        if info is not None:
            return info

    raise ProbeError("Neither glxinfo nor vulkaninfo reported a renderer")


def parse_glxinfo(output: str, devices: Sequence[GpuDevice] = ()) -> RendererInfo | None:
    renderer: str | None = None
    version: str | None = None
    vendor: str | None = None
    device_hex: str | None = None
    vendor_hex: str | None = None

    for line in output.splitlines():
        stripped = line.strip()
        key, sep, value = stripped.partition(":")
        if not sep:
            continue
        value = value.strip()
        if key == "OpenGL renderer string":
            renderer = value
        elif key == "OpenGL core profile version string" or (
            key == "OpenGL version string" and version is None
        ):
            version = value
        elif key == "OpenGL vendor string":
            vendor = value
        elif key == "Device":
            m = _HEX_ID_RE.search(value)
            if m:
                device_hex = m.group(1).lower()
        elif key == "Vendor":
            m = _HEX_ID_RE.search(value)
            if m:
                vendor_hex = m.group(1).lower()

    if not renderer:
        return None

    return RendererInfo(
        api=GraphicsApi.OPENGL,
        renderer=renderer,
        driver=version or vendor,
        device=match_device(devices, renderer, vendor_hex, device_hex),
    )


def parse_vulkaninfo(output: str, devices: Sequence[GpuDevice] = ()) -> RendererInfo | None:
    fields: dict[str, str] = {}
    in_gpu = False
    for line in output.splitlines():
        if _VK_GPU_RE.match(line.strip()):
            if in_gpu:
                break  # first GPU block only
            in_gpu = True
            continue
        if not in_gpu:
            continue
        m = _VK_FIELD_RE.match(line)
        if m:
            fields.setdefault(m.group(1), m.group(2))

    name = fields.get("deviceName")
    if not name:
        return None

    driver = fields.get("driverInfo") or fields.get("driverName")
    return RendererInfo(
        api=GraphicsApi.VULKAN,
        renderer=name,
        driver=driver,
        device=match_device(
            devices,
            name,
            (fields.get("vendorID") or "").lower() or None,
            (fields.get("deviceID") or "").lower() or None,
        ),
    )


def match_device(
    devices: Sequence[GpuDevice],
    renderer: str,
    vendor_hex: str | None = None,
    device_hex: str | None = None,
) -> GpuDevice | None:
    """Best-effort cross-reference of a renderer report to an inventory device."""
    if device_hex:
        for dev in devices:
            if (dev.device_id or "").lower() != device_hex:
                continue
            if vendor_hex and (dev.vendor_id or "").lower() != vendor_hex:
                continue
            return dev

    lowered = renderer.lower()
    for dev in devices:
        # "NVIDIA Corporation GA106 [GeForce RTX 3060] [10de:2503]"
        candidates = [dev.model]
        candidates.extend(b for b in re.findall(r"\[([^\]]+)\]", dev.model) if " " in b)
        if any(c.lower() in lowered for c in candidates):
            return dev
    return None

"""GPU + API -> environment variable set.

Pure functions: the same device, API and integration kind always resolve to
the same :class:`EnvVarSet`, in the same order.
"""

from __future__ import annotations

import logging

from kaede.base import EnvVarSet, GpuDevice, GraphicsApi, IntegrationKind, VendorClass

logger = logging.getLogger(__name__)

DRI_PRIME = "DRI_PRIME"
MESA_VK_DEVICE_SELECT = "MESA_VK_DEVICE_SELECT"
MESA_VK_FORCE_DEFAULT = "MESA_VK_DEVICE_SELECT_FORCE_DEFAULT_DEVICE"
PRESSURE_VESSEL_IMPORT_VARS = "PRESSURE_VESSEL_IMPORT_VARS"

NVIDIA_OFFLOAD: tuple[tuple[str, str], ...] = (
    ("__NV_PRIME_RENDER_OFFLOAD", "1"),
    ("__GLX_VENDOR_LIBRARY_NAME", "nvidia"),
    ("__VK_LAYER_NV_optimus", "NVIDIA_only"),
)

# Every name resolve() can emit; reset and prefix stripping act on these only.
MANAGED_VARIABLES: tuple[str, ...] = (
    DRI_PRIME,
    MESA_VK_DEVICE_SELECT,
    MESA_VK_FORCE_DEFAULT,
    *(name for name, _ in NVIDIA_OFFLOAD),
    PRESSURE_VESSEL_IMPORT_VARS,
)


def resolve(
    device: GpuDevice,
    api: GraphicsApi | None = None,
    kind: IntegrationKind | None = None,
) -> EnvVarSet:
    """Compute the variables that route rendering to *device*.

    *api* ``None`` means automatic: both OpenGL and Vulkan selection is
    emitted. For Steam games the Steam Runtime container strips unknown
    variables, so every chosen name is listed in
    ``PRESSURE_VESSEL_IMPORT_VARS``.
    """
    pairs: list[tuple[str, str]] = []

    if device.vendor_class is VendorClass.NVIDIA:
        pairs.extend(NVIDIA_OFFLOAD)
    elif device.vendor_class is VendorClass.MESA:
        pairs.append((DRI_PRIME, str(device.index)))
        if api is not GraphicsApi.OPENGL:
            pairs.append((MESA_VK_DEVICE_SELECT, mesa_device_selector(device)))
            pairs.append((MESA_VK_FORCE_DEFAULT, "1"))
    else:
        logger.warning(
            "No known offload method for %s (%s); leaving environment unchanged",
            device.card,
            device.model,
        )
        return EnvVarSet()

    if kind is IntegrationKind.STEAM_GAME:
        names = ",".join(name for name, _ in pairs)
        pairs.append((PRESSURE_VESSEL_IMPORT_VARS, names))

    return EnvVarSet(pairs)


def mesa_device_selector(device: GpuDevice) -> str:
    """Value for ``MESA_VK_DEVICE_SELECT``.

    ``vendor:device`` in bare hex when sysfs reported both ids, otherwise a
    ``pci-dddd_bb_dd_f`` selector built from the bus address.
    """
    if device.vendor_id and device.device_id:
        return f"{_bare_hex(device.vendor_id)}:{_bare_hex(device.device_id)}"
    if device.bus_address:
        return "pci-" + device.bus_address.replace(":", "_").replace(".", "_")
    return str(device.index)


def _bare_hex(value: str) -> str:
    value = value.strip().lower()
    return value[2:] if value.startswith("0x") else value

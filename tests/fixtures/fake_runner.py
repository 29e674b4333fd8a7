"""Canned command output for tests that would otherwise shell out."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from kaede.runner import CommandOutput, CommandRunner

LSPCI_HYBRID = """\
0000:00:02.0 VGA compatible controller [0300]: Intel Corporation Alder Lake-P GT2 [Iris Xe Graphics] [8086:46a6] (rev 0c)
0000:00:1f.3 Audio device [0403]: Intel Corporation Alder Lake PCH-P High Definition Audio Controller [8086:51c8] (rev 01)
0000:01:00.0 VGA compatible controller [0300]: NVIDIA Corporation GA107M [GeForce RTX 3050 Mobile] [10de:25a2] (rev a1)
"""

LSPCI_DUAL_AMD = """\
0000:03:00.0 VGA compatible controller [0300]: Advanced Micro Devices, Inc. [AMD/ATI] Navi 23 [Radeon RX 6600/6600 XT/6600M] [1002:73ff] (rev c7)
0000:0c:00.0 VGA compatible controller [0300]: Advanced Micro Devices, Inc. [AMD/ATI] Cezanne [Radeon Vega Series / Radeon Vega Mobile Series] [1002:1638] (rev c8)
"""

GLXINFO_INTEL = """\
name of display: :0
display: :0  screen: 0
direct rendering: Yes
Extended renderer info (GLX_MESA_query_renderer):
    Vendor: Intel (0x8086)
    Device: Mesa Intel(R) Graphics (ADL GT2) (0x46a6)
    Version: 23.1.9
    Accelerated: yes
    Video memory: 15700MB
OpenGL vendor string: Intel
OpenGL renderer string: Mesa Intel(R) Graphics (ADL GT2)
OpenGL core profile version string: 4.6 (Core Profile) Mesa 23.1.9
OpenGL version string: 4.6 (Compatibility Profile) Mesa 23.1.9
"""

VULKANINFO_NVIDIA = """\
==========
VULKANINFO
==========

Vulkan Instance Version: 1.3.250

Devices:
========
GPU0:
\tapiVersion         = 1.3.242
\tdriverVersion      = 535.129.3.0
\tvendorID           = 0x10de
\tdeviceID           = 0x25a2
\tdeviceType         = PHYSICAL_DEVICE_TYPE_DISCRETE_GPU
\tdeviceName         = NVIDIA GeForce RTX 3050 Laptop GPU
\tdriverID           = DRIVER_ID_NVIDIA_PROPRIETARY
\tdriverName         = NVIDIA
\tdriverInfo         = 535.129.03
GPU1:
\tapiVersion         = 1.3.255
\tvendorID           = 0x8086
\tdeviceID           = 0x46a6
\tdeviceName         = Intel(R) Graphics (ADL GT2)
\tdriverName         = Intel open-source Mesa driver
\tdriverInfo         = Mesa 23.1.9
"""


class FakeRunner(CommandRunner):
    """CommandRunner answering from a ``{program: CommandOutput}`` table.

    Programs missing from the table behave as not installed. Every call is
    recorded in :attr:`calls` as ``(argv, env)``.
    """

    def __init__(self, responses: Mapping[str, CommandOutput] | None = None) -> None:
        super().__init__(timeout=1.0)
        self.responses: dict[str, CommandOutput] = dict(responses or {})
        self.calls: list[tuple[list[str], dict[str, str] | None]] = []

    def available(self, program: str) -> bool:
        return program in self.responses

    def run(
        self,
        argv: Sequence[str],
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandOutput | None:
        self.calls.append((list(argv), dict(env) if env is not None else None))
        return self.responses.get(argv[0])


def ok(stdout: str = "") -> CommandOutput:
    return CommandOutput(returncode=0, stdout=stdout)

"""Allow ``python -m kaede``."""

from __future__ import annotations

import sys

from kaede.cli import main

sys.exit(main())

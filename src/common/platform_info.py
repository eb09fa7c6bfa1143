"""Host operating system and architecture detection."""
from __future__ import annotations

import platform
import sys


def os_name() -> str:
    """Return ``windows``, ``mac`` or ``linux``."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "mac"
    return "linux"


def machine() -> str:
    """Lower-cased raw machine name, e.g. ``x86_64`` or ``arm64``."""
    return platform.machine().lower()


def is_arm() -> bool:
    return "arm" in machine() or "aarch64" in machine()


def is_64bits() -> bool:
    arch = machine()
    return arch.endswith("64") or sys.maxsize > 2 ** 32

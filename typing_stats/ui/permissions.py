"""macOS permission checks for global keyboard capture.

Uses ctypes against the system frameworks so no pyobjc dependency is
needed. Every check returns True on non-macOS platforms.
"""

import ctypes
import ctypes.util
import logging
import platform
import subprocess

__all__ = [
    "check_accessibility",
    "check_input_monitoring",
    "keyboard_access_granted",
    "open_accessibility_settings",
    "open_input_monitoring_settings",
]

logger = logging.getLogger(__name__)

_IS_MACOS = platform.system() == "Darwin"

# IOKit constants (IOHIDLib.h)
_IOHID_REQUEST_TYPE_LISTEN_EVENT = 1
_IOHID_ACCESS_TYPE_GRANTED = 0

_SETTINGS_URL = "x-apple.systempreferences:com.apple.preference.security?{pane}"


def _load_framework(name: str):
    path = ctypes.util.find_library(name)
    if path is None:
        raise OSError(f"{name} framework not found")
    return ctypes.cdll.LoadLibrary(path)


def check_accessibility() -> bool:
    """Check if Accessibility permission is granted."""
    if not _IS_MACOS:
        return True

    try:
        lib = _load_framework("ApplicationServices")
        lib.AXIsProcessTrusted.restype = ctypes.c_bool
        return lib.AXIsProcessTrusted()
    except (OSError, AttributeError):
        logger.debug("Could not check Accessibility permission, assuming granted")
        return True


def check_input_monitoring() -> bool:
    """Check if Input Monitoring permission is granted (macOS 10.15+)."""
    if not _IS_MACOS:
        return True

    try:
        iokit = _load_framework("IOKit")
        iokit.IOHIDCheckAccess.restype = ctypes.c_uint
        iokit.IOHIDCheckAccess.argtypes = [ctypes.c_uint]
        return iokit.IOHIDCheckAccess(_IOHID_REQUEST_TYPE_LISTEN_EVENT) == _IOHID_ACCESS_TYPE_GRANTED
    except (OSError, AttributeError):
        logger.debug("Could not check Input Monitoring permission, assuming granted")
        return True


def keyboard_access_granted() -> bool:
    """True if the app may observe global key presses."""
    return check_accessibility() or check_input_monitoring()


def _open_settings_pane(pane: str) -> None:
    if not _IS_MACOS:
        return
    try:
        subprocess.Popen(["open", _SETTINGS_URL.format(pane=pane)])
    except OSError as e:
        logger.warning(f"Failed to open {pane} settings: {e}")


def open_accessibility_settings() -> None:
    """Open System Settings to the Accessibility pane."""
    _open_settings_pane("Privacy_Accessibility")


def open_input_monitoring_settings() -> None:
    """Open System Settings to the Input Monitoring pane."""
    _open_settings_pane("Privacy_ListenEvent")

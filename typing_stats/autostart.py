"""Platform-specific start-at-login management."""

import logging
import os
import platform
import plistlib
import shlex
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

LAUNCHAGENT_LABEL = "com.typingstats.agent"
DESKTOP_ENTRY_NAME = "typing-stats.desktop"


def set_auto_start(enabled: bool) -> bool:
    """Enable or disable start at login.

    Returns True on success, False on failure.
    """
    system = platform.system()
    try:
        if system == "Darwin":
            return _set_macos(enabled)
        elif system == "Windows":
            return _set_windows(enabled)
        elif system == "Linux":
            return _set_linux(enabled)
        else:
            logger.warning(f"Start at login not supported on {system}")
            return False
    except OSError as e:
        logger.warning(f"Failed to {'enable' if enabled else 'disable'} start at login: {e}")
        return False


def get_auto_start() -> bool:
    """Check if start at login is currently enabled at the OS level."""
    system = platform.system()
    try:
        if system == "Darwin":
            return _plist_path().exists()
        elif system == "Windows":
            return _get_windows()
        elif system == "Linux":
            return _desktop_entry_path().exists()
        else:
            return False
    except OSError:
        return False


def _app_launch_args() -> list[str]:
    """Determine the launch command for the current execution context."""
    exe = sys.executable
    # Frozen .app bundle
    if ".app/Contents/MacOS/" in exe:
        bundle_path = exe.split(".app/Contents/MacOS/")[0] + ".app"
        return ["open", "-a", bundle_path]
    if getattr(sys, "frozen", False):
        return [exe]
    return [exe, "-m", "typing_stats.main"]


# -- macOS: LaunchAgent plist --------------------------------------------------

def _plist_path() -> Path:
    return Path.home() / "Library" / "LaunchAgents" / f"{LAUNCHAGENT_LABEL}.plist"


def _set_macos(enabled: bool) -> bool:
    plist_file = _plist_path()

    if not enabled:
        if plist_file.exists():
            plist_file.unlink()
            logger.info(f"Removed LaunchAgent plist: {plist_file}")
        return True

    plist_data = {
        "Label": LAUNCHAGENT_LABEL,
        "ProgramArguments": _app_launch_args(),
        "RunAtLoad": True,
        "KeepAlive": False,
    }
    plist_file.parent.mkdir(parents=True, exist_ok=True)
    with open(plist_file, "wb") as f:
        plistlib.dump(plist_data, f)

    logger.info(f"Wrote LaunchAgent plist: {plist_file}")
    return True


# -- Linux: XDG autostart entry ----------------------------------------------

def _desktop_entry_path() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "autostart" / DESKTOP_ENTRY_NAME


def _set_linux(enabled: bool) -> bool:
    entry_file = _desktop_entry_path()

    if not enabled:
        if entry_file.exists():
            entry_file.unlink()
            logger.info(f"Removed autostart entry: {entry_file}")
        return True

    exec_line = " ".join(shlex.quote(arg) for arg in _app_launch_args())
    entry_file.parent.mkdir(parents=True, exist_ok=True)
    entry_file.write_text(
        "[Desktop Entry]\n"
        "Type=Application\n"
        "Name=Typing Stats\n"
        f"Exec={exec_line}\n"
        "X-GNOME-Autostart-enabled=true\n"
    )
    logger.info(f"Wrote autostart entry: {entry_file}")
    return True


# -- Windows: Registry Run key ------------------------------------------------

_WIN_RUN_KEY = r"Software\Microsoft\Windows\CurrentVersion\Run"
_WIN_VALUE_NAME = "Typing Stats"


def _set_windows(enabled: bool) -> bool:
    import winreg

    key = winreg.OpenKey(
        winreg.HKEY_CURRENT_USER, _WIN_RUN_KEY, 0, winreg.KEY_SET_VALUE
    )
    try:
        if enabled:
            command = " ".join(f'"{arg}"' for arg in _app_launch_args())
            winreg.SetValueEx(key, _WIN_VALUE_NAME, 0, winreg.REG_SZ, command)
            logger.info("Added registry Run key for start at login")
        else:
            try:
                winreg.DeleteValue(key, _WIN_VALUE_NAME)
                logger.info("Removed registry Run key for start at login")
            except FileNotFoundError:
                pass
    finally:
        winreg.CloseKey(key)
    return True


def _get_windows() -> bool:
    import winreg

    key = winreg.OpenKey(winreg.HKEY_CURRENT_USER, _WIN_RUN_KEY, 0, winreg.KEY_READ)
    try:
        winreg.QueryValueEx(key, _WIN_VALUE_NAME)
        return True
    except FileNotFoundError:
        return False
    finally:
        winreg.CloseKey(key)

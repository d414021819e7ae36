"""UI module - system tray and history window."""

from .tray import TrayIcon
from .history import HistoryWindow

__all__ = ["TrayIcon", "HistoryWindow"]

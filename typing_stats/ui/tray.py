"""System tray icon and stats menu."""

import logging
import platform
import threading
from enum import Enum
from typing import Callable, Optional

from PIL import Image, ImageDraw

from ..config import DISPLAY_KEYSTROKES, DISPLAY_WORDS
from ..sync.repository import MetricKind, StatsSnapshot

try:
    import pystray
    from pystray import MenuItem as Item
except ImportError:
    pystray = None
    Item = None

__all__ = [
    "TrayIcon",
    "TrayState",
    "TrayModel",
    "STATE_COLORS",
    "create_icon_image",
    "format_number",
    "menu_stat_lines",
    "status_title",
]

logger = logging.getLogger(__name__)


def _hide_from_dock() -> None:
    """Run as a menu bar only app on macOS."""
    if platform.system() != "Darwin":
        return
    try:
        import AppKit
        # NSApplicationActivationPolicyAccessory = 1 (no Dock icon)
        AppKit.NSApplication.sharedApplication().setActivationPolicy_(1)
    except ImportError:
        pass


class TrayState(Enum):
    """Tray icon states."""

    COUNTING = "counting"  # Green - keyboard capture running
    PERMISSION_REQUIRED = "permission_required"  # Amber - no keyboard access
    STARTING = "starting"  # Blue - loading stores


STATE_COLORS = {
    TrayState.COUNTING: "#22c55e",
    TrayState.PERMISSION_REQUIRED: "#f59e0b",
    TrayState.STARTING: "#3b82f6",
}


def create_icon_image(color: str, size: int = 64) -> Image.Image:
    """Create a key-cap shaped icon in ``color``."""
    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    margin = size // 8
    draw.rounded_rectangle(
        [margin, margin, size - margin, size - margin],
        radius=size // 6,
        fill=color,
    )
    inner = size // 4
    draw.rectangle(
        [inner, size - inner - size // 10, size - inner, size - inner],
        fill="#ffffff",
    )
    return image


def format_number(number: int) -> str:
    """Format with thousands separators, e.g. 12,345."""
    return f"{number:,}"


def _metric_for_mode(display_mode: str) -> MetricKind:
    return MetricKind.WORDS if display_mode == DISPLAY_WORDS else MetricKind.KEYSTROKES


def menu_stat_lines(snapshot: StatsSnapshot, display_mode: str) -> list[str]:
    """Stats lines shown at the top of the menu for the current display mode."""
    summary = snapshot.metric(_metric_for_mode(display_mode))
    lines = [
        f"Today: {format_number(summary.today)}",
        f"Yesterday: {format_number(summary.yesterday)}",
        f"7-day avg: {format_number(summary.seven_day_avg)}",
        f"30-day avg: {format_number(summary.thirty_day_avg)}",
    ]
    if summary.record > 0:
        lines.append(f"Record: {format_number(summary.record)} ({summary.record_date})")
    return lines


def status_title(snapshot: StatsSnapshot, display_mode: str) -> str:
    """Tooltip text, e.g. "1,234 keystrokes today"."""
    kind = _metric_for_mode(display_mode)
    return f"{format_number(snapshot.metric(kind).today)} {kind.value} today"


class TrayModel:
    """Display state for the tray icon."""

    def __init__(self) -> None:
        self.state: TrayState = TrayState.STARTING
        self.snapshot: StatsSnapshot = StatsSnapshot()
        self.display_mode: str = DISPLAY_KEYSTROKES
        self.permission_granted: bool = True
        self.auto_start: bool = False


class TrayIcon:
    """System tray icon showing today's typing stats."""

    def __init__(
        self,
        on_view_history: Optional[Callable[[], None]] = None,
        on_toggle_display_mode: Optional[Callable[[], None]] = None,
        on_toggle_auto_start: Optional[Callable[[bool], None]] = None,
        on_grant_permission: Optional[Callable[[], None]] = None,
        on_quit: Optional[Callable[[], None]] = None,
    ):
        """Initialize tray icon.

        Args:
            on_view_history: Callback when "View History..." is clicked
            on_toggle_display_mode: Callback when words/keystrokes is toggled
            on_toggle_auto_start: Callback with the new start-at-login value
            on_grant_permission: Callback when "Permission Required" is clicked
            on_quit: Callback when quit is clicked
        """
        if pystray is None:
            raise ImportError("pystray is required for system tray support")

        self._on_view_history = on_view_history
        self._on_toggle_display_mode = on_toggle_display_mode
        self._on_toggle_auto_start = on_toggle_auto_start
        self._on_grant_permission = on_grant_permission
        self._on_quit = on_quit

        self.model = TrayModel()
        self._icon: Optional[pystray.Icon] = None
        self._thread: Optional[threading.Thread] = None

    def _create_menu(self) -> "pystray.Menu":
        """Create the tray menu."""
        items = []

        if self.model.permission_granted:
            for line in menu_stat_lines(self.model.snapshot, self.model.display_mode):
                items.append(Item(line, None, enabled=False))
        else:
            items.append(Item("Permission Required", self._handle_grant_permission))

        items.append(pystray.Menu.SEPARATOR)
        items.append(Item("View History...", self._handle_view_history))
        items.append(pystray.Menu.SEPARATOR)

        mode_title = (
            "Show Words" if self.model.display_mode == DISPLAY_KEYSTROKES else "Show Keystrokes"
        )
        items.append(Item(mode_title, self._handle_toggle_display_mode))
        items.append(Item(
            "Start at Login",
            self._handle_toggle_auto_start,
            checked=lambda item: self.model.auto_start,
        ))

        items.append(pystray.Menu.SEPARATOR)
        items.append(Item("Quit", self._handle_quit))

        return pystray.Menu(*items)

    # -- Menu action handlers ------------------------------------------------

    def _handle_view_history(self, icon, item) -> None:
        if self._on_view_history:
            self._on_view_history()

    def _handle_toggle_display_mode(self, icon, item) -> None:
        if self._on_toggle_display_mode:
            self._on_toggle_display_mode()

    def _handle_toggle_auto_start(self, icon, item) -> None:
        self.model.auto_start = not self.model.auto_start
        if self._on_toggle_auto_start:
            self._on_toggle_auto_start(self.model.auto_start)
        self._update_menu()

    def _handle_grant_permission(self, icon, item) -> None:
        if self._on_grant_permission:
            self._on_grant_permission()

    def _handle_quit(self, icon, item) -> None:
        if self._on_quit:
            self._on_quit()
        self.stop()

    # -- State updates -------------------------------------------------------

    def update_snapshot(self, snapshot: StatsSnapshot) -> None:
        """Show new stats (safe to call from any thread)."""
        self.model.snapshot = snapshot
        self._update_title()
        self._update_menu()

    def set_display_mode(self, display_mode: str) -> None:
        self.model.display_mode = display_mode
        self._update_title()
        self._update_menu()

    def set_permission_granted(self, granted: bool) -> None:
        self.model.permission_granted = granted
        self.set_state(TrayState.COUNTING if granted else TrayState.PERMISSION_REQUIRED)

    def set_auto_start(self, enabled: bool) -> None:
        self.model.auto_start = enabled
        self._update_menu()

    def set_state(self, state: TrayState) -> None:
        self.model.state = state
        self._update_icon()

    def _update_title(self) -> None:
        if self._icon:
            self._icon.title = status_title(self.model.snapshot, self.model.display_mode)

    def _update_icon(self) -> None:
        """Update the tray icon image and menu."""
        if self._icon:
            color = STATE_COLORS.get(self.model.state, STATE_COLORS[TrayState.STARTING])
            self._icon.icon = create_icon_image(color)
            self._icon.menu = self._create_menu()

    def _update_menu(self) -> None:
        if self._icon:
            self._icon.menu = self._create_menu()

    def _build_icon(self) -> "pystray.Icon":
        color = STATE_COLORS[self.model.state]
        return pystray.Icon(
            "Typing Stats",
            create_icon_image(color),
            status_title(self.model.snapshot, self.model.display_mode),
            self._create_menu(),
        )

    def start(self) -> None:
        """Start the tray icon in a background thread."""
        if self._icon is not None:
            return
        self._icon = self._build_icon()
        self._thread = threading.Thread(target=self._icon.run, daemon=True)
        self._thread.start()
        logger.info("Tray icon started")

    def stop(self) -> None:
        """Stop the tray icon."""
        if self._icon:
            self._icon.stop()
            self._icon = None
            logger.info("Tray icon stopped")

    def run_blocking(self) -> None:
        """Run the tray icon in the main thread (blocking)."""
        _hide_from_dock()
        if self._icon is None:
            self._icon = self._build_icon()
        self._icon.run()

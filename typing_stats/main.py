"""Typing Stats - Main entry point."""

import logging
import os
import signal
import sys
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import __version__
from .autostart import get_auto_start, set_auto_start
from .config import Config, setup_logging
from .credentials import CredentialStore
from .keystroke_monitor import KeystrokeMonitor
from .sync import LocalStore, RemoteStore, StatsRepository
from .ui.history import HistoryWindow
from .ui.permissions import (
    keyboard_access_granted,
    open_accessibility_settings,
    open_input_monitoring_settings,
)
from .ui.tray import TrayIcon, TrayState

logger = logging.getLogger(__name__)

# Recompute derived stats so "today" rolls over at midnight without typing
REFRESH_JOB_ID = "stats_refresh_job"
REFRESH_INTERVAL_SECONDS = 60

# Remote timeout for the final flush on quit
SHUTDOWN_TIMEOUT_SECONDS = 5


class TypingStatsApp:
    """Main application orchestrator.

    Wires the stores, repository, keyboard monitor and tray together and
    handles lifecycle (start / shutdown).
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize the application."""
        self.config = config or Config.load()
        setup_logging(self.config.debug_mode)

        logger.info(f"Typing Stats {__version__} starting...")
        device_id = self.config.ensure_device_id()

        self.scheduler = BackgroundScheduler(daemon=True)
        self.credentials = CredentialStore()

        self.local = LocalStore()
        self.remote: Optional[RemoteStore] = None
        if self.config.remote.enabled:
            logger.info(f"Using remote store: {self.config.remote.api_url}")
            self.remote = RemoteStore(
                api_url=self.config.remote.api_url,
                token=self.credentials.load_token(),
                device_id=device_id,
                quota_bytes=self.config.remote.quota_bytes,
                poll_interval_seconds=self.config.remote.poll_interval_seconds,
                scheduler=self.scheduler,
                compress=self.config.remote.compress,
                timeout=self.config.remote.timeout,
            )

        self.repository = StatsRepository(
            local=self.local,
            remote=self.remote,
            device_id=device_id,
            debounce_seconds=self.config.persistence.debounce_seconds,
            scheduler=self.scheduler,
        )

        self.monitor = KeystrokeMonitor(on_change=self.repository.observe_counts)
        self.history = HistoryWindow(self.repository.get_all_stats)

        self.tray = TrayIcon(
            on_view_history=self._on_view_history,
            on_toggle_display_mode=self._on_toggle_display_mode,
            on_toggle_auto_start=self._on_toggle_auto_start,
            on_grant_permission=self._on_grant_permission,
            on_quit=self._on_quit,
        )
        self.tray.set_display_mode(self.config.display_mode)
        self.tray.set_auto_start(get_auto_start())

        self._history_thread: Optional[threading.Thread] = None
        self._shutdown_done = False
        self._shutdown_event = threading.Event()

    def run(self) -> None:
        """Run the application."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.repository.subscribe(self.tray.update_snapshot)
        self.repository.start()
        self.repository.load_initial()

        if self.remote is not None:
            self.remote.observe_changes(self.repository.handle_remote_changes)

        self.scheduler.add_job(
            self.repository.compute_derived_stats,
            trigger=IntervalTrigger(seconds=REFRESH_INTERVAL_SECONDS),
            id=REFRESH_JOB_ID,
            replace_existing=True,
        )

        self._start_monitor()

        logger.info("Typing Stats running")
        try:
            self.tray.run_blocking()
        finally:
            self._shutdown()

    def _start_monitor(self) -> None:
        if not keyboard_access_granted():
            logger.warning("Keyboard access not granted, waiting for permission")
            self.tray.set_permission_granted(False)
            return
        if self.monitor.start():
            self.tray.set_permission_granted(True)
        else:
            self.tray.set_state(TrayState.PERMISSION_REQUIRED)

    # -- Event handlers ---------------------------------------------------

    def _on_view_history(self) -> None:
        """Open the history window unless it is already showing."""
        if self._history_thread and self._history_thread.is_alive():
            return
        self._history_thread = threading.Thread(
            target=self.history.show,
            args=(self.config.display_mode,),
            daemon=True,
        )
        self._history_thread.start()

    def _on_toggle_display_mode(self) -> None:
        mode = self.config.toggle_display_mode()
        self.tray.set_display_mode(mode)
        self._save_config()
        logger.info(f"Display mode changed to {mode}")

    def _on_toggle_auto_start(self, enabled: bool) -> None:
        if set_auto_start(enabled):
            self.config.auto_start = enabled
            self._save_config()
        else:
            # Keep the checkmark in line with what the OS actually has
            self.tray.set_auto_start(get_auto_start())

    def _on_grant_permission(self) -> None:
        open_accessibility_settings()
        open_input_monitoring_settings()
        # The user may already have granted access before clicking
        if not self.monitor.is_running and keyboard_access_granted():
            self._start_monitor()

    def _save_config(self) -> None:
        try:
            self.config.save()
        except OSError as e:
            logger.warning(f"Failed to save config: {e}")

    def _on_quit(self) -> None:
        """Handle quit action."""
        logger.info("Quit requested")
        self._shutdown_event.set()
        self.tray.stop()

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}")
        self._shutdown_event.set()
        self.tray.stop()

    # -- Lifecycle --------------------------------------------------------

    def _shutdown(self) -> None:
        """Shutdown the application. Safe to call multiple times."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        logger.info("Shutting down...")

        self.monitor.stop()
        if self.remote is not None:
            self.remote.stop_observing()
            # Don't let an unreachable remote hold up exit
            self.remote.fail_fast(SHUTDOWN_TIMEOUT_SECONDS)
        self.repository.close()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self.remote is not None:
            self.remote.close()
        self.local.close()

        logger.info("Shutdown complete")

    def __enter__(self) -> "TypingStatsApp":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._shutdown()


class SingleInstanceLock:
    """File-based single-instance lock using advisory locking."""

    def __init__(self, path: Optional[str] = None):
        self._file = None
        self._path = path or os.path.join(Config.get_config_dir(), ".typing-stats.lock")

    def acquire(self) -> bool:
        """Try to acquire the lock. Returns True on success."""
        os.makedirs(os.path.dirname(self._path), exist_ok=True)
        self._file = open(self._path, "a+")  # noqa: SIM115
        try:
            if sys.platform == "win32":
                import msvcrt
                msvcrt.locking(self._file.fileno(), msvcrt.LK_NBLCK, 1)
            else:
                import fcntl
                fcntl.flock(self._file, fcntl.LOCK_EX | fcntl.LOCK_NB)
            self._file.seek(0)
            self._file.truncate(0)
            self._file.write(str(os.getpid()))
            self._file.flush()
            return True
        except OSError:
            self._file.close()
            self._file = None
            return False

    def release(self) -> None:
        """Release the lock and remove the lock file."""
        if not self._file:
            return
        try:
            if sys.platform == "win32":
                import msvcrt
                msvcrt.locking(self._file.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                import fcntl
                fcntl.flock(self._file, fcntl.LOCK_UN)
            self._file.close()
            os.unlink(self._path)
        except OSError as e:
            logger.debug(f"Lock cleanup failed: {e}")
        self._file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def main() -> None:
    """Main entry point."""
    lock = SingleInstanceLock()
    if not lock.acquire():
        print("Typing Stats is already running.")
        sys.exit(0)

    try:
        with TypingStatsApp() as app:
            app.run()
    finally:
        lock.release()


if __name__ == "__main__":
    main()

"""Global keystroke and word counting."""

import logging
import threading
from typing import Any, Callable, Optional

try:
    from pynput import keyboard
except ImportError:
    # No usable input backend (e.g. headless session); start() reports it
    keyboard = None

__all__ = ["KeystrokeMonitor", "WORD_SEPARATORS", "IGNORED_KEYS"]

logger = logging.getLogger(__name__)

# pynput Key names that end a word
WORD_SEPARATORS = frozenset({"space", "enter", "tab"})
SEPARATOR_CHARS = frozenset({" ", "\t", "\n", "\r"})

# Editing/navigation keys that leave the word state untouched
IGNORED_KEYS = frozenset({"backspace", "delete", "left", "right", "up", "down"})

CountsCallback = Callable[[int, int], None]


class KeystrokeMonitor:
    """Counts key presses and words typed since the monitor was created.

    Counts are cumulative and only ever grow. A word is counted on the first
    non-separator key after a separator (or at session start); editing and
    arrow keys neither start nor end a word.

    Usage:
        monitor = KeystrokeMonitor(on_change=repository.observe_counts)
        monitor.start()
    """

    def __init__(self, on_change: Optional[CountsCallback] = None):
        """Initialize the monitor.

        Args:
            on_change: Called with (keystroke_count, word_count) after every key
        """
        self._on_change = on_change
        self._lock = threading.Lock()
        self._keystroke_count = 0
        self._word_count = 0
        self._last_was_separator = True
        self._listener = None

    @property
    def keystroke_count(self) -> int:
        return self._keystroke_count

    @property
    def word_count(self) -> int:
        return self._word_count

    @property
    def is_running(self) -> bool:
        return self._listener is not None and self._listener.running

    @staticmethod
    def _classify(key: Any) -> tuple[bool, bool]:
        """Return (is_separator, is_ignored) for a pynput key."""
        name = getattr(key, "name", None)
        if name in IGNORED_KEYS:
            return False, True
        if name in WORD_SEPARATORS:
            return True, False
        char = getattr(key, "char", None)
        return char in SEPARATOR_CHARS, False

    def handle_key(self, key: Any) -> None:
        """Count one key press."""
        is_separator, is_ignored = self._classify(key)

        with self._lock:
            self._keystroke_count += 1
            if not is_ignored:
                if not is_separator and self._last_was_separator:
                    self._word_count += 1
                self._last_was_separator = is_separator
            counts = (self._keystroke_count, self._word_count)

        if self._on_change:
            self._on_change(*counts)

    def _on_press(self, key: Any) -> None:
        # An exception here would stop the pynput listener thread
        try:
            self.handle_key(key)
        except Exception:
            logger.exception("Failed to record key press")

    def start(self) -> bool:
        """Start listening for key presses.

        Returns:
            True if the listener is running
        """
        if self._listener is not None:
            return True
        if keyboard is None:
            logger.warning("Keyboard capture unavailable - pynput has no usable backend")
            return False

        try:
            self._listener = keyboard.Listener(on_press=self._on_press)
            self._listener.daemon = True
            self._listener.start()
        except Exception as e:
            logger.warning(f"Failed to start keystroke listener: {e}")
            self._listener = None
            return False

        logger.info("Keystroke monitor started")
        return True

    def stop(self) -> None:
        """Stop listening."""
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None
        logger.info("Keystroke monitor stopped")

    def reset_word_state(self) -> None:
        """Treat the next key as the start of a new word."""
        with self._lock:
            self._last_was_separator = True

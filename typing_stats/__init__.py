"""Typing Stats - per-day keystroke and word counts synced across devices."""

__version__ = "1.0.0"

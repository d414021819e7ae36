"""History window listing per-day totals using tkinter."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..config import DISPLAY_WORDS
from ..sync.daily_stats import DailyStats, date_from_day_id, day_id_days_ago

__all__ = ["HistoryWindow", "HistoryRow", "RANGE_OPTIONS", "history_rows", "format_full_date"]

logger = logging.getLogger(__name__)

# Label -> number of days including today (None = everything)
RANGE_OPTIONS: dict[str, Optional[int]] = {
    "Last 7 Days": 7,
    "Last 30 Days": 30,
    "All Time": None,
}


@dataclass
class HistoryRow:
    """One line of the history table."""

    day_id: str
    date_label: str
    count: int


def format_full_date(day_id: str) -> str:
    """Format a day key as e.g. "Monday, December 27, 2025"."""
    day = date_from_day_id(day_id)
    if day is None:
        return day_id
    return f"{day.strftime('%A, %B')} {day.day}, {day.year}"


def history_rows(
    stats: list[DailyStats],
    display_mode: str,
    days: Optional[int],
    now: Optional[datetime] = None,
) -> list[HistoryRow]:
    """Rows for the history table, newest day first."""
    cutoff = day_id_days_ago(days - 1, now) if days else None
    rows = []
    for record in sorted(stats, key=lambda s: s.day_id, reverse=True):
        if cutoff is not None and record.day_id < cutoff:
            continue
        count = record.total_words if display_mode == DISPLAY_WORDS else record.total_keystrokes
        rows.append(HistoryRow(record.day_id, format_full_date(record.day_id), count))
    return rows


class HistoryWindow:
    """Read-only table of daily totals."""

    def __init__(self, get_stats: Callable[[], list[DailyStats]]):
        """Initialize history window.

        Args:
            get_stats: Returns all records (the repository's get_all_stats)
        """
        self._get_stats = get_stats
        self._window = None
        self._tree = None
        self._range_var = None
        self._total_var = None
        self._display_mode = ""

    def show(self, display_mode: str) -> None:
        """Show the window (blocks until it is closed)."""
        import tkinter as tk
        from tkinter import ttk

        self._display_mode = display_mode
        title = "Word History" if display_mode == DISPLAY_WORDS else "Keystroke History"

        self._window = tk.Tk()
        self._window.title(f"Typing Stats - {title}")
        self._window.geometry("420x480")

        # Center on screen
        self._window.update_idletasks()
        x = (self._window.winfo_screenwidth() - 420) // 2
        y = (self._window.winfo_screenheight() - 480) // 2
        self._window.geometry(f"+{x}+{y}")

        frame = ttk.Frame(self._window, padding=15)
        frame.pack(fill=tk.BOTH, expand=True)

        header = ttk.Frame(frame)
        header.pack(fill=tk.X, pady=(0, 10))
        ttk.Label(header, text=title, font=("Helvetica", 16, "bold")).pack(side=tk.LEFT)

        self._range_var = tk.StringVar(value="Last 30 Days")
        range_box = ttk.Combobox(
            header,
            textvariable=self._range_var,
            values=list(RANGE_OPTIONS),
            state="readonly",
            width=14,
        )
        range_box.pack(side=tk.RIGHT)
        range_box.bind("<<ComboboxSelected>>", lambda e: self._refresh())

        self._tree = ttk.Treeview(frame, columns=("date", "count"), show="headings")
        self._tree.heading("date", text="Date")
        self._tree.heading("count", text="Words" if display_mode == DISPLAY_WORDS else "Keystrokes")
        self._tree.column("date", width=260)
        self._tree.column("count", width=110, anchor=tk.E)
        self._tree.pack(fill=tk.BOTH, expand=True)

        self._total_var = tk.StringVar()
        ttk.Label(frame, textvariable=self._total_var).pack(anchor=tk.W, pady=(10, 0))

        self._window.bind("<Escape>", lambda e: self.close())
        self._window.protocol("WM_DELETE_WINDOW", self.close)

        self._refresh()
        self._window.mainloop()

    def _refresh(self) -> None:
        if self._tree is None:
            return
        days = RANGE_OPTIONS.get(self._range_var.get())
        rows = history_rows(self._get_stats(), self._display_mode, days)

        self._tree.delete(*self._tree.get_children())
        for row in rows:
            self._tree.insert("", "end", values=(row.date_label, f"{row.count:,}"))
        total = sum(row.count for row in rows)
        self._total_var.set(f"{len(rows)} days, {total:,} total")

    def close(self) -> None:
        if self._window:
            self._window.destroy()
            self._window = None
            self._tree = None

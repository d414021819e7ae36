"""Tests for tray menu text."""

from typing_stats.config import DISPLAY_KEYSTROKES, DISPLAY_WORDS
from typing_stats.sync.repository import MetricSummary, StatsSnapshot
from typing_stats.ui.tray import (
    STATE_COLORS,
    TrayState,
    create_icon_image,
    format_number,
    menu_stat_lines,
    status_title,
)


def make_snapshot(**overrides) -> StatsSnapshot:
    keystrokes = MetricSummary(
        today=12345,
        yesterday=9000,
        seven_day_avg=8100,
        thirty_day_avg=7050,
        record=20001,
        record_day_id="2025-12-26",
    )
    words = MetricSummary(today=2100, yesterday=1500)
    return StatsSnapshot(keystrokes=overrides.get("keystrokes", keystrokes), words=words)


class TestFormatting:
    """Tests for menu formatting helpers."""

    def test_format_number(self):
        assert format_number(0) == "0"
        assert format_number(999) == "999"
        assert format_number(1234567) == "1,234,567"

    def test_keystroke_menu_lines(self):
        lines = menu_stat_lines(make_snapshot(), DISPLAY_KEYSTROKES)

        assert lines == [
            "Today: 12,345",
            "Yesterday: 9,000",
            "7-day avg: 8,100",
            "30-day avg: 7,050",
            "Record: 20,001 (12/26)",
        ]

    def test_word_menu_lines_skip_empty_record(self):
        lines = menu_stat_lines(make_snapshot(), DISPLAY_WORDS)

        assert lines[0] == "Today: 2,100"
        assert lines[1] == "Yesterday: 1,500"
        assert not any(line.startswith("Record") for line in lines)

    def test_status_title(self):
        snapshot = make_snapshot()

        assert status_title(snapshot, DISPLAY_KEYSTROKES) == "12,345 keystrokes today"
        assert status_title(snapshot, DISPLAY_WORDS) == "2,100 words today"

    def test_empty_snapshot(self):
        assert menu_stat_lines(StatsSnapshot(), DISPLAY_KEYSTROKES)[0] == "Today: 0"


class TestIcon:
    """Tests for icon rendering."""

    def test_every_state_has_a_color(self):
        assert set(STATE_COLORS) == set(TrayState)

    def test_create_icon_image(self):
        image = create_icon_image(STATE_COLORS[TrayState.COUNTING], size=32)

        assert image.size == (32, 32)
        assert image.mode == "RGBA"

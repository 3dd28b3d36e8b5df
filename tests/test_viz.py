"""Tests for chat_log_viz.py chart rendering."""

from __future__ import annotations

import pytest

from chat_log_viz import main, plot_daily_messages


POINTS = [
    {"date": "2024-01-02", "messages": 3},
    {"date": "2024-01-03", "messages": 2},
    {"date": "2024-01-05", "messages": 1},
]


class TestPlotDailyMessages:
    def test_writes_png(self, tmp_path):
        path = plot_daily_messages(POINTS, str(tmp_path / "charts" / "daily.png"))
        with open(path, "rb") as f:
            assert f.read(8) == b"\x89PNG\r\n\x1a\n"

    def test_unsorted_points(self, tmp_path):
        path = plot_daily_messages(list(reversed(POINTS)), str(tmp_path / "daily.png"))
        assert (tmp_path / "daily.png").exists()
        assert path == str(tmp_path / "daily.png")

    def test_empty_points_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            plot_daily_messages([], str(tmp_path / "daily.png"))


class TestMain:
    def test_plots_csv(self, tmp_path, capsys):
        csv_path = tmp_path / "daily_messages.csv"
        csv_path.write_text("date,messages\n2024-01-02,3\n2024-01-03,2\n", encoding="utf-8")
        out = tmp_path / "daily.png"
        main([str(csv_path), "--output", str(out)])
        assert out.exists()
        assert "Chart saved" in capsys.readouterr().out

    def test_missing_csv(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.csv")])
        assert exc_info.value.code == 2

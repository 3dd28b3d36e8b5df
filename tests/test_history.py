"""Tests for chat_log_history.py (transcript formatting and CLI)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from chat_log_history import format_transcript, format_user_list, main
from chat_log_source import FetchFailure
from helpers import make_sample_rows


# ── Helpers ──────────────────────────────────────────────────────


def _write_json(path: Path, data: object) -> str:
    """Write *data* as JSON and return the string path."""
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return str(path)


# ── format_transcript ────────────────────────────────────────────


class TestFormatTranscript:
    def test_lines_per_message(self):
        text = format_transcript(
            {"id": "u1", "name": "Anna"},
            [
                {"speaker": "user", "text": "Привет", "timestamp": "2024-01-02T10:00:00+00:00"},
                {"speaker": "assistant", "text": "Здравствуйте!", "timestamp": None},
            ],
        )
        assert "Chat history: Anna (u1)" in text
        assert "[2024-01-02 10:00] USER: Привет" in text
        assert "[Unknown] ASSISTANT: Здравствуйте!" in text

    def test_empty_transcript(self):
        text = format_transcript({"id": "u1", "name": "Anna"}, [])
        assert "USER" not in text

    def test_user_list(self):
        text = format_user_list([{"id": "u1", "name": "Anna"}, {"id": "u2", "name": "bob"}])
        assert text.splitlines()[0].split() == ["u1", "Anna"]
        assert len(text.splitlines()) == 2


# ── main ─────────────────────────────────────────────────────────


class TestMain:
    def test_list_users(self, tmp_path, capsys):
        path = _write_json(tmp_path / "logs.json", make_sample_rows())
        main(["--list", "--input", path])
        out = capsys.readouterr().out
        assert "Anna" in out and "bob" in out

    def test_print_transcript(self, tmp_path, capsys):
        path = _write_json(tmp_path / "logs.json", make_sample_rows())
        main(["u1", "--input", path])
        out = capsys.readouterr().out
        assert "+7 916 123 45 67" in out
        assert out.index("Привет") < out.index("ещё вопрос")

    def test_write_transcript_to_file(self, tmp_path):
        path = _write_json(tmp_path / "logs.json", make_sample_rows())
        output = tmp_path / "u2.txt"
        main(["u2", "--input", path, "--output", str(output)])
        assert "спасибо, до свидания" in output.read_text(encoding="utf-8")

    def test_unknown_user_exits_1(self, tmp_path):
        path = _write_json(tmp_path / "logs.json", make_sample_rows())
        with pytest.raises(SystemExit) as exc_info:
            main(["nobody", "--input", path])
        assert exc_info.value.code == 1

    def test_requires_user_or_list(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["--list", "--input", str(tmp_path / "missing.json")])
        assert exc_info.value.code == 2

    def test_fetch_failure_exits_1(self):
        with patch("chat_log_history.fetch_chat_logs", side_effect=FetchFailure("down")):
            with pytest.raises(SystemExit) as exc_info:
                main(["--list"])
        assert exc_info.value.code == 1

    def test_reads_store_by_default(self, capsys):
        with patch("chat_log_history.fetch_chat_logs", return_value=make_sample_rows()):
            main(["u2"])
        assert "bob" in capsys.readouterr().out

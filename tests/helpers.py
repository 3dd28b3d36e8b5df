"""Shared test helpers for chat-log stats tests.

Regular functions (not fixtures) that can be imported by any test module.
"""

from __future__ import annotations


def make_row(
    session_id: str | None,
    user_id: str | int | None,
    role: str = "user",
    content: str | None = "hello",
    created_at: str | None = "2024-01-02T10:00:00+00:00",
    **extra,
) -> dict:
    """Build a chat_logs row dict shaped like a PostgREST response."""
    row = {
        "session_id": session_id,
        "user_id": user_id,
        "role": role,
        "content": content,
        "created_at": created_at,
    }
    row.update(extra)
    return row


def make_sample_rows() -> list[dict]:
    """Six valid rows across three sessions and two users, plus one invalid row.

    - s1 (u1, Anna): 3 rows on 2024-01-02, the user leaves a phone number.
    - s2 (u2, bob): 2 rows on 2024-01-03, no contacts from the user; the
      assistant mentions an email, which must not count.
    - s3 (u1): 1 row on 2024-01-05, so u1 is a returning user.
    - one row without session_id.
    """
    return [
        make_row("s1", "u1", "user", "Привет", "2024-01-02T10:00:00+00:00", first_name="Anna"),
        make_row("s1", "u1", "assistant", "Здравствуйте!", "2024-01-02T10:00:05+00:00"),
        make_row("s1", "u1", "user", "+7 916 123 45 67", "2024-01-02T10:01:00+00:00"),
        make_row("s2", "u2", "user", "спасибо, до свидания", "2024-01-03T09:00:00+00:00",
                 username="bob"),
        make_row("s2", "u2", "assistant", "пишите на info@example.com",
                 "2024-01-03T09:00:10+00:00"),
        make_row("s3", "u1", "user", "ещё вопрос", "2024-01-05T12:00:00+00:00"),
        make_row(None, "u3", "user", "мой номер 89161234567", "2024-01-05T13:00:00+00:00"),
    ]


def make_sessions(lengths: list[int], successful: int = 0) -> list[dict]:
    """Build rows for len(lengths) sessions; the first *successful* carry an email."""
    rows = []
    for i, n in enumerate(lengths):
        for m in range(n):
            content = "a@b.ru" if i < successful and m == 0 else "ok"
            rows.append(make_row(f"s{i}", f"u{i}", "user", content))
    return rows

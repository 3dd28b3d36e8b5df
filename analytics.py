"""Core data processing for Telegram bot chat-log analytics.

Derives dialog, retention and contact-conversion statistics from the flat
``chat_logs`` rows stored in Supabase.  Used by both the CLIs
(chat_log_summary.py, chat_log_history.py) and the web dashboard (app.py).
"""

from __future__ import annotations

import csv
import json
import logging
import os
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

logger = logging.getLogger(__name__)

# Patterns applied to lower-cased user message content.
PHONE_PATTERN = re.compile(r"(\+7|8)[\s\-\(\)]?[\d\s\-\(\)]{10,}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
TELEGRAM_PATTERN = re.compile(r"@[a-zA-Z0-9_]+")
CONTACT_KEYWORDS_PATTERN = re.compile(
    r"мой телефон|мой номер|можете звонить|вот мой контакт|моя почта|мой email|записывайте",
    re.IGNORECASE,
)

CONTACT_PATTERNS = (
    PHONE_PATTERN,
    EMAIL_PATTERN,
    TELEGRAM_PATTERN,
    CONTACT_KEYWORDS_PATTERN,
)


def load_chat_logs(path: str = "chat_logs.json") -> list[dict]:
    """Load chat-log rows from a JSON export of the ``chat_logs`` table.

    Args:
        path: Filesystem path to a JSON array of row dicts.  Defaults to
            "chat_logs.json" in the current directory.

    Returns:
        List of raw row dicts, in file order.

    Raises:
        FileNotFoundError: If the file at *path* does not exist.
        json.JSONDecodeError: If the file contains invalid JSON.
    """
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def _round_half_up(value: float, ndigits: int = 0) -> float:
    """Round *value* with halves going up (12.5 -> 13, unlike ``round()``)."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _format_pct(num: int, den: int) -> str:
    """Format ``num / den`` as an integer percentage string like "42%"."""
    if not den:
        return "0%"
    return f"{int(_round_half_up(num / den * 100))}%"


def parse_created_at(value: Any) -> datetime | None:
    """Parse a ``created_at`` value into a datetime.

    Accepts ISO-8601 strings (as returned by PostgREST, including a trailing
    "Z"), datetime/date objects and Unix epochs.

    Args:
        value: Raw ``created_at`` field from a row.

    Returns:
        A datetime in the value's own offset, or None when the value is
        absent or cannot be parsed.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value))
        except (ValueError, OSError, OverflowError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _row_day(row: dict) -> str | None:
    """Return the row's calendar day as "YYYY-MM-DD", or None."""
    created = parse_created_at(row.get("created_at"))
    return created.strftime("%Y-%m-%d") if created is not None else None


def _format_timestamp(value: Any) -> str | None:
    """Return a JSON-friendly form of a ``created_at`` value."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


# ---------------------------------------------------------------------------
# Derivation steps
# ---------------------------------------------------------------------------

def filter_valid_rows(rows: Iterable[dict]) -> list[dict]:
    """Keep only rows that carry both a session and a user identifier.

    Identifiers are normalised to strings so that session membership and
    user grouping are plain string equality regardless of how the store
    typed the columns.

    Args:
        rows: Raw rows as fetched, in fetch order.

    Returns:
        New row dicts (shallow copies) in the original order.
    """
    valid: list[dict] = []
    discarded = 0
    for row in rows:
        if not isinstance(row, dict) or not row.get("session_id") or not row.get("user_id"):
            discarded += 1
            continue
        clean = dict(row)
        clean["session_id"] = str(row["session_id"])
        clean["user_id"] = str(row["user_id"])
        valid.append(clean)

    if discarded:
        logger.warning(
            "Discarded %d chat-log rows without session_id or user_id", discarded
        )
    return valid


def group_sessions(rows: list[dict]) -> dict[str, list[dict]]:
    """Group valid rows into sessions keyed by ``session_id``.

    Keys are in first-seen order; rows keep fetch order within a session.
    """
    sessions: dict[str, list[dict]] = {}
    for row in rows:
        sessions.setdefault(row["session_id"], []).append(row)
    return sessions


def compute_avg_dialog_length(sessions: dict[str, list[dict]]) -> float:
    """Mean number of rows per session, rounded to one decimal place.

    Returns 0 when there are no sessions.
    """
    if not sessions:
        return 0
    total = sum(len(session_rows) for session_rows in sessions.values())
    return _round_half_up(total / len(sessions), 1)


def compute_retention(rows: list[dict]) -> dict[str, Any]:
    """Compute day-level user retention.

    A user is *returning* when their rows span more than one distinct
    calendar day.  Rows without a usable ``created_at`` do not count
    towards any day.

    Args:
        rows: Valid rows (from ``filter_valid_rows``).

    Returns:
        Dict with keys:
            - total_users: int, users with at least one dated row.
            - returning_users: int, users active on more than one day.
            - retention_rate: str, integer percentage such as "25%".
    """
    user_days: dict[str, set[str]] = {}
    for row in rows:
        day = _row_day(row)
        if day is None:
            continue
        user_days.setdefault(row["user_id"], set()).add(day)

    total_users = len(user_days)
    returning_users = sum(1 for days in user_days.values() if len(days) > 1)
    return {
        "total_users": total_users,
        "returning_users": returning_users,
        "retention_rate": _format_pct(returning_users, total_users),
    }


def has_contact_info(content: str | None) -> bool:
    """Return True if a message looks like the speaker left contact details.

    Matches a Russian phone number, an email address, a Telegram
    ``@handle`` or one of the contact-intent phrases.  This is a heuristic:
    false positives and negatives are expected.

    Args:
        content: Raw message text; None or empty never matches.
    """
    if not content:
        return False
    text = str(content).lower()
    return any(pattern.search(text) for pattern in CONTACT_PATTERNS)


def is_successful_session(session_rows: list[dict]) -> bool:
    """A session succeeds when any of its user messages carries contact info."""
    return any(
        has_contact_info(row.get("content"))
        for row in session_rows
        if row.get("role") == "user"
    )


def compute_dialog_outcomes(sessions: dict[str, list[dict]]) -> dict[str, Any]:
    """Classify every session and derive success/fail rates.

    Rates use the number of dialogs as the denominator, and
    ``fail_rate`` is ``100 - success_rate`` so the two always add up.

    Args:
        sessions: Mapping of session_id to its rows (from ``group_sessions``).

    Returns:
        Dict with keys: successful_dialogs, failed_dialogs, success_rate,
        fail_rate (rates as "N%" strings, "0%" with no dialogs).
    """
    successful = 0
    for session_id, session_rows in sessions.items():
        if not is_successful_session(session_rows):
            continue
        successful += 1
        logger.debug(
            "Successful dialog %s: %s",
            session_id,
            [
                str(row["content"])[:50]
                for row in session_rows
                if row.get("role") == "user" and row.get("content")
            ],
        )

    total = len(sessions)
    if not total:
        return {
            "successful_dialogs": 0,
            "failed_dialogs": 0,
            "success_rate": "0%",
            "fail_rate": "0%",
        }

    success_pct = int(_round_half_up(successful / total * 100))
    return {
        "successful_dialogs": successful,
        "failed_dialogs": total - successful,
        "success_rate": f"{success_pct}%",
        "fail_rate": f"{100 - success_pct}%",
    }


def compute_time_series(
    rows: list[dict],
    date_range: tuple[date, date] | None = None,
) -> list[dict]:
    """Count messages per calendar day.

    Args:
        rows: Valid rows (from ``filter_valid_rows``).
        date_range: Optional inclusive ``(start, end)`` pair of dates.
            Only the series is restricted; no other metric looks at it.

    Returns:
        List of ``{"date": "YYYY-MM-DD", "messages": int}`` dicts sorted
        by date.
    """
    counts: dict[str, int] = {}
    for row in rows:
        day = _row_day(row)
        if day is None:
            continue
        counts[day] = counts.get(day, 0) + 1

    points = [{"date": day, "messages": n} for day, n in sorted(counts.items())]

    if date_range is not None:
        start, end = date_range
        lower = start - timedelta(days=1)
        upper = end + timedelta(days=1)
        points = [
            p for p in points
            if lower < date.fromisoformat(p["date"]) < upper
        ]
    return points


def compute_user_list(rows: list[dict]) -> list[dict]:
    """Deduplicate users by ``user_id``, first occurrence wins.

    The display name is ``first_name``, else ``username``, else the id.
    """
    users: dict[str, dict] = {}
    for row in rows:
        user_id = row["user_id"]
        if user_id in users:
            continue
        users[user_id] = {
            "id": user_id,
            "name": row.get("first_name") or row.get("username") or user_id,
        }
    return list(users.values())


def compute_transcripts(rows: list[dict]) -> dict[str, list[dict]]:
    """Group rows into per-user transcripts, keeping fetch order."""
    transcripts: dict[str, list[dict]] = {}
    for row in rows:
        transcripts.setdefault(row["user_id"], []).append(
            {
                "speaker": "user" if row.get("role") == "user" else "assistant",
                "text": row.get("content") or "",
                "timestamp": _format_timestamp(row.get("created_at")),
            }
        )
    return transcripts


def derive(
    rows: Iterable[dict],
    date_range: tuple[date, date] | None = None,
) -> dict[str, Any]:
    """Derive every dashboard structure from raw chat-log rows.

    Pure and deterministic: everything is recomputed from *rows* on each
    call.  Empty input is valid and yields zero counts and "0%" rates.

    Args:
        rows: Raw rows as fetched from the ``chat_logs`` table.
        date_range: Optional inclusive ``(start, end)`` dates restricting
            the time series only.

    Returns:
        Dict with keys:
            - metrics: total_messages, total_dialogs, avg_dialog_length,
              total_users, returning_users, retention_rate,
              successful_dialogs, failed_dialogs, success_rate, fail_rate,
              conversion.
            - series: list of {"date", "messages"} points.
            - users: list of {"id", "name"} summaries.
            - transcripts: dict of user_id to list of
              {"speaker", "text", "timestamp"}.
    """
    valid = filter_valid_rows(rows)
    sessions = group_sessions(valid)
    retention = compute_retention(valid)
    outcomes = compute_dialog_outcomes(sessions)

    metrics = {
        "total_messages": len(valid),
        "total_dialogs": len(sessions),
        "avg_dialog_length": compute_avg_dialog_length(sessions),
        **retention,
        **outcomes,
        "conversion": outcomes["success_rate"],
    }
    return {
        "metrics": metrics,
        "series": compute_time_series(valid, date_range),
        "users": compute_user_list(valid),
        "transcripts": compute_transcripts(valid),
    }


# ---------------------------------------------------------------------------
# Rolling average helpers (pure Python, no pandas)
# ---------------------------------------------------------------------------

def _rolling_avg(values: list[float], window: int) -> list[float]:
    """Compute rolling average, using available values when the window is not yet full.

    Args:
        values: Numeric series to smooth.
        window: Maximum number of trailing values to average.  At the
            start of the series, fewer values are used (expanding window
            until *window* values are available).

    Returns:
        List of floats the same length as *values*.
    """
    result = []
    for i in range(len(values)):
        start = max(0, i - window + 1)
        w = values[start : i + 1]
        result.append(sum(w) / len(w))
    return result


def _format_rolling(values: list[float], window: int) -> list[float]:
    """Rolling average rounded to 2 decimal places."""
    return [round(v, 2) for v in _rolling_avg(values, window)]


def compute_chart_data(series: list[dict]) -> dict[str, Any]:
    """Shape the daily message series for Chart.js.

    Args:
        series: Points from ``compute_time_series``, sorted by date.

    Returns:
        Dict with keys: dates (ISO date strings) and messages, a sub-dict
        with keys values, avg_7d and avg_28d.
    """
    values = [p["messages"] for p in series]
    return {
        "dates": [p["date"] for p in series],
        "messages": {
            "values": values,
            "avg_7d": _format_rolling(values, 7),
            "avg_28d": _format_rolling(values, 28),
        },
    }


def _serialize_range(date_range: tuple[date, date] | None) -> dict | None:
    if date_range is None:
        return None
    start, end = date_range
    return {"start": start.isoformat(), "end": end.isoformat()}


def build_dashboard_payload(
    rows: list[dict],
    date_range: tuple[date, date] | None = None,
) -> dict[str, Any]:
    """One-call entry point: derive everything the dashboard page renders.

    Transcripts are left out; the service hands them out per user.

    Args:
        rows: Raw chat-log rows.
        date_range: Optional inclusive date range for the chart.

    Returns:
        Dict with keys: generated_at, status ("ok"), message (None),
        date_range, summary (the metrics dict), chart, users.
    """
    result = derive(rows, date_range)
    return {
        "generated_at": datetime.now().isoformat(),
        "status": "ok",
        "message": None,
        "date_range": _serialize_range(date_range),
        "summary": result["metrics"],
        "chart": compute_chart_data(result["series"]),
        "users": result["users"],
    }


def empty_dashboard_payload(
    message: str,
    date_range: tuple[date, date] | None = None,
) -> dict[str, Any]:
    """Dashboard payload for a reachable store that holds no rows."""
    payload = build_dashboard_payload([], date_range)
    payload["status"] = "empty"
    payload["message"] = message
    return payload


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def save_analytics_files(
    result: dict[str, Any],
    output_dir: str = "chat_analytics",
) -> None:
    """Write CSV/JSON analytics files to output_dir.

    Creates the output directory if it doesn't exist and writes
    metrics.json, daily_messages.json/csv and users.json/csv.

    Args:
        result: Dict returned by ``derive``.
        output_dir: Directory path for output files.  Defaults to
            "chat_analytics".
    """
    os.makedirs(output_dir, exist_ok=True)

    with open(f"{output_dir}/metrics.json", "w", encoding="utf-8") as f:
        json.dump(result["metrics"], f, indent=2, ensure_ascii=False)

    with open(f"{output_dir}/daily_messages.json", "w", encoding="utf-8") as f:
        json.dump(result["series"], f, indent=2)

    with open(f"{output_dir}/daily_messages.csv", "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["date", "messages"])
        writer.writeheader()
        writer.writerows(result["series"])

    with open(f"{output_dir}/users.json", "w", encoding="utf-8") as f:
        json.dump(result["users"], f, indent=2, ensure_ascii=False)

    with open(f"{output_dir}/users.csv", "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["id", "name"])
        writer.writeheader()
        writer.writerows(result["users"])


def print_summary_report(metrics: dict[str, Any], series: list[dict]) -> None:
    """Print the CLI summary report to stdout.

    Args:
        metrics: The ``metrics`` dict from ``derive``.
        series: The ``series`` list from ``derive``.
    """
    print(f"\n{'=' * 60}")
    print("Telegram Bot Chat Summary")
    print(f"{'=' * 60}")
    print(f"Total Messages: {metrics['total_messages']:,}")
    print(f"Total Dialogs: {metrics['total_dialogs']:,}")
    print(f"Messages per Dialog: {metrics['avg_dialog_length']}")
    print(f"Users: {metrics['total_users']:,} ({metrics['returning_users']:,} returning)")
    print(f"Retention: {metrics['retention_rate']}")
    print(f"Left Contacts: {metrics['success_rate']} ({metrics['successful_dialogs']:,} dialogs)")
    print(f"No Contacts: {metrics['fail_rate']} ({metrics['failed_dialogs']:,} dialogs)")

    if series:
        print(f"First Day: {series[0]['date']}")
        print(f"Last Day: {series[-1]['date']}")

        busiest = sorted(series, key=lambda p: p["messages"], reverse=True)[:5]
        print("\nTop 5 Days by Messages:")
        for point in busiest:
            print(f"  {point['date']}: {point['messages']:,} messages")

    print(f"{'=' * 60}")

"""FastAPI service for the Telegram bot chat-log dashboard.

Serves a Chart.js dashboard over the Supabase ``chat_logs`` table.  Raw rows
are cached for a short TTL; every request re-derives its metrics from them.

Deployment: uvicorn app:app --host 127.0.0.1 --port 8204
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from analytics import build_dashboard_payload, derive, empty_dashboard_payload
from chat_log_source import EmptyResult, FetchFailure, fetch_chat_logs

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
TEMPLATE_PATH = Path(__file__).parent / "dashboard_template.html"
USER_CHAT_TEMPLATE_PATH = Path(__file__).parent / "user_chat_template.html"
CACHE_TTL_SECONDS = float(os.getenv("CHAT_LOGS_CACHE_TTL_S", "300"))
EMPTY_MESSAGE = "No chat logs yet"
FETCH_FAILED_MESSAGE = "Failed to load chat logs from Supabase"

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Telegram Bot Dashboard",
    root_path=os.getenv("ROOT_PATH", ""),
)

# ---------------------------------------------------------------------------
# Thread-safe row cache
# ---------------------------------------------------------------------------
# "started" numbers every fetch as it begins; "generation" is the number of
# the fetch whose rows are stored.  An older fetch never replaces a newer one.
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "rows": None,
    "fetched_at": 0.0,
    "started": 0,
    "generation": 0,
}


def _load_rows(force_refresh: bool = False) -> list[dict]:
    """Return cached chat-log rows, refetching if stale or forced.

    An empty table is cached as an empty list.

    Raises:
        HTTPException: 503 when the store cannot be reached.
    """
    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["rows"] is not None
            and (now - _cache["fetched_at"]) < CACHE_TTL_SECONDS
        ):
            return _cache["rows"]
        _cache["started"] += 1
        generation = _cache["started"]

    try:
        rows = fetch_chat_logs()
    except EmptyResult:
        logger.info("chat_logs is empty")
        rows = []
    except FetchFailure as e:
        logger.warning("Chat log fetch failed: %s", e)
        raise HTTPException(status_code=503, detail=FETCH_FAILED_MESSAGE) from e

    with _cache_lock:
        if generation < _cache["generation"]:
            logger.info(
                "Dropping stale fetch %d; fetch %d already stored",
                generation,
                _cache["generation"],
            )
            return _cache["rows"]
        _cache["rows"] = rows
        _cache["fetched_at"] = time.monotonic()
        _cache["generation"] = generation

    return rows


def _date_range(start: date | None, end: date | None) -> tuple[date, date] | None:
    """Both bounds are needed to filter; a half-open range means no filter."""
    if start is None or end is None:
        return None
    return start, end


def _dashboard_data(start: date | None = None, end: date | None = None) -> dict[str, Any]:
    date_range = _date_range(start, end)
    rows = _load_rows()
    if not rows:
        return empty_dashboard_payload(EMPTY_MESSAGE, date_range)
    return build_dashboard_payload(rows, date_range)


def _render_template(path: Path, variable: str, data: Any) -> HTMLResponse:
    """Inject *data* as ``const <variable> = ...;`` into an HTML template."""
    if not path.exists():
        raise HTTPException(status_code=500, detail="Template not found")

    template = path.read_text(encoding="utf-8")
    data_json = json.dumps(data, ensure_ascii=False)
    data_json = data_json.replace("</", r"<\/")
    html = template.replace(
        f"const {variable} = {{}};",
        f"const {variable} = {data_json};",
    )
    return HTMLResponse(content=html)


def _user_chat(user_id: str) -> dict[str, Any]:
    result = derive(_load_rows())
    messages = result["transcripts"].get(user_id)
    if messages is None:
        raise HTTPException(status_code=404, detail="User not found")
    user = next(u for u in result["users"] if u["id"] == user_id)
    return {"user": user, "messages": messages}


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def dashboard_html():
    """Serve the dashboard HTML with injected data."""
    return _render_template(TEMPLATE_PATH, "DASHBOARD_DATA", _dashboard_data())


@app.get("/api/data")
def api_data(start: date | None = None, end: date | None = None):
    """Return the dashboard payload, with the chart limited to [start, end]."""
    return _dashboard_data(start, end)


@app.get("/api/refresh")
def api_refresh():
    """Force a refetch of the chat-log table."""
    rows = _load_rows(force_refresh=True)
    return {
        "status": "refreshed",
        "rows": len(rows),
        "fetched_at": datetime.now().isoformat(),
    }


@app.get("/api/users")
def api_users():
    """Return the deduplicated user list."""
    return derive(_load_rows())["users"]


@app.get("/api/users/{user_id}/chat")
def api_user_chat(user_id: str):
    """Return one user's transcript in fetch order."""
    return _user_chat(user_id)


@app.get("/users/{user_id}", response_class=HTMLResponse)
def user_chat_html(user_id: str):
    """Serve the chat history page for one user."""
    return _render_template(USER_CHAT_TEMPLATE_PATH, "CHAT_DATA", _user_chat(user_id))

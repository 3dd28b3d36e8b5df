"""Read access to the Supabase ``chat_logs`` table.

A single PostgREST query fetches every row; all filtering and aggregation
happen client-side in analytics.py.
"""

from __future__ import annotations

import logging
import os

import httpx
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
DEFAULT_TABLE = "chat_logs"
DEFAULT_TIMEOUT_S = 10.0


class ChatLogSourceError(Exception):
    """Base class for errors reported by the chat-log source."""


class FetchFailure(ChatLogSourceError):
    """The store could not be reached or returned an unusable response."""


class EmptyResult(ChatLogSourceError):
    """The store answered but the table holds no rows."""


def _setting(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def build_client() -> httpx.Client:
    """Create an HTTP client for the configured Supabase project.

    Reads SUPABASE_URL, SUPABASE_KEY and SUPABASE_TIMEOUT_S from the
    environment (a ``.env`` file is honoured).

    Raises:
        FetchFailure: If SUPABASE_URL or SUPABASE_KEY is not set.
    """
    url = _setting("SUPABASE_URL").rstrip("/")
    key = _setting("SUPABASE_KEY")
    if not url or not key:
        raise FetchFailure("SUPABASE_URL and SUPABASE_KEY must be set")

    try:
        timeout_s = float(_setting("SUPABASE_TIMEOUT_S", str(DEFAULT_TIMEOUT_S)))
    except ValueError:
        timeout_s = DEFAULT_TIMEOUT_S

    return httpx.Client(
        base_url=url,
        headers={"apikey": key, "Authorization": f"Bearer {key}"},
        timeout=timeout_s,
    )


def fetch_chat_logs(
    client: httpx.Client | None = None,
    table: str | None = None,
) -> list[dict]:
    """Fetch every row of the chat-log table.

    Args:
        client: HTTP client whose base URL points at the Supabase project.
            Built from the environment when omitted, and closed afterwards.
        table: Table name.  Defaults to CHAT_LOGS_TABLE or "chat_logs".

    Returns:
        Non-empty list of row dicts, in the order the store returned them.

    Raises:
        FetchFailure: On transport errors, non-2xx responses, or a body
            that is not a JSON array.
        EmptyResult: If the table has no rows.
    """
    table = table or _setting("CHAT_LOGS_TABLE", DEFAULT_TABLE)
    owns_client = client is None
    if client is None:
        client = build_client()

    try:
        resp = client.get(f"/rest/v1/{table}", params={"select": "*"})
        resp.raise_for_status()
        rows = resp.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            "Supabase query failed: status=%s body=%s",
            e.response.status_code,
            e.response.text[:500],
        )
        raise FetchFailure(f"Supabase returned HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error("Supabase request error: %s", e)
        raise FetchFailure(f"Could not reach Supabase: {e}") from e
    except ValueError as e:
        logger.error("Supabase returned invalid JSON: %s", e)
        raise FetchFailure("Supabase returned invalid JSON") from e
    finally:
        if owns_client:
            client.close()

    if not isinstance(rows, list):
        raise FetchFailure(f"Expected a list of rows, got {type(rows).__name__}")
    if not rows:
        raise EmptyResult(f"Table {table!r} has no rows")

    logger.info("Loaded %d rows from %s", len(rows), table)
    return rows

"""chat_log_history.py

Print the chat history of one Telegram bot user.

Rows come from Supabase by default, or from a JSON export with ``--input``.
Use ``--list`` to see the known users, or ``--output FILE`` to write the
transcript to a file instead of stdout.
"""

from __future__ import annotations

import argparse
import json
import sys

from analytics import derive, load_chat_logs, parse_created_at
from chat_log_source import EmptyResult, FetchFailure, fetch_chat_logs


def _format_time(timestamp: str | None) -> str:
    """Format a transcript timestamp as 'YYYY-MM-DD HH:MM', or 'Unknown'."""
    parsed = parse_created_at(timestamp)
    if parsed is None:
        return "Unknown"
    return parsed.strftime("%Y-%m-%d %H:%M")


def format_transcript(user: dict, messages: list[dict]) -> str:
    """Render a transcript as plain text, one block per message.

    Args:
        user: User summary dict with 'id' and 'name'.
        messages: Transcript entries with 'speaker', 'text' and 'timestamp'.

    Returns:
        The formatted transcript.
    """
    lines = ["=" * 60, f"Chat history: {user['name']} ({user['id']})", "=" * 60]
    for m in messages:
        speaker = "USER" if m["speaker"] == "user" else "ASSISTANT"
        lines.append(f"[{_format_time(m.get('timestamp'))}] {speaker}: {m.get('text', '')}")
    lines.append("-" * 60)
    return "\n".join(lines) + "\n"


def format_user_list(users: list[dict]) -> str:
    """One line per user: id and display name."""
    return "".join(f"{u['id']:<20} {u['name']}\n" for u in users)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for listing users and printing transcripts."""
    parser = argparse.ArgumentParser(description="Show a Telegram bot user's chat history")
    parser.add_argument("user_id", nargs="?", help="User whose history to print")
    parser.add_argument("--input", "-i",
                        help="Read rows from a JSON export instead of Supabase")
    parser.add_argument("--list", "-l", dest="list_users", action="store_true",
                        help="List users instead of printing a transcript")
    parser.add_argument("--output", "-o", help="Write the transcript to a file")
    args = parser.parse_args(argv)

    if not args.list_users and not args.user_id:
        parser.error("either a user_id or --list is required")

    try:
        rows = load_chat_logs(args.input) if args.input else fetch_chat_logs()
    except FileNotFoundError:
        parser.error(f"File not found: {args.input}")
    except json.JSONDecodeError as e:
        parser.error(f"Invalid JSON in {args.input}: {e}")
    except FetchFailure as e:
        print(f"Error: could not load chat logs: {e}", file=sys.stderr)
        sys.exit(1)
    except EmptyResult:
        rows = []

    result = derive(rows)

    if args.list_users:
        if not result["users"]:
            print("No users found.")
            return
        print(format_user_list(result["users"]), end="")
        return

    messages = result["transcripts"].get(args.user_id)
    if messages is None:
        print(f"Error: no chat history for user {args.user_id}", file=sys.stderr)
        sys.exit(1)

    user = next(u for u in result["users"] if u["id"] == args.user_id)
    text = format_transcript(user, messages)

    if args.output:
        try:
            with open(args.output, "w", encoding="utf-8") as out:
                out.write(text)
        except OSError as e:
            parser.error(f"Failed to write output file: {e}")
        print(f"Transcript written to {args.output}")
    else:
        print(text, end="")


if __name__ == "__main__":
    main()

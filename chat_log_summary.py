"""Generate chat-log analytics files and print a summary report.

Reads rows from Supabase (or a JSON export given with ``--input``), derives
the dashboard metrics and writes them to ``chat_analytics/``.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date

from analytics import derive, load_chat_logs, print_summary_report, save_analytics_files
from chat_log_source import EmptyResult, FetchFailure, fetch_chat_logs
from chat_log_viz import plot_daily_messages


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Summarise Telegram bot chat logs")
    parser.add_argument("--input", "-i",
                        help="Read rows from a JSON export instead of Supabase")
    parser.add_argument("--start", type=date.fromisoformat,
                        help="First day of the chart range (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat,
                        help="Last day of the chart range (YYYY-MM-DD)")
    parser.add_argument("--output-dir", "-o", default="chat_analytics",
                        help="Directory for CSV/JSON output (default: chat_analytics)")
    parser.add_argument("--plot", action="store_true",
                        help="Also render daily_messages.png")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: load rows, derive metrics, save files, print report."""
    args = _build_parser().parse_args(argv)

    try:
        rows = load_chat_logs(args.input) if args.input else fetch_chat_logs()
    except FileNotFoundError:
        print(f"Error: {args.input} not found", file=sys.stderr)
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Error: {args.input} is not valid JSON: {e}", file=sys.stderr)
        sys.exit(1)
    except FetchFailure as e:
        print(f"Error: could not load chat logs: {e}", file=sys.stderr)
        sys.exit(1)
    except EmptyResult:
        rows = []

    if not isinstance(rows, list):
        print("Error: expected a JSON array of chat-log rows", file=sys.stderr)
        sys.exit(1)
    if not rows:
        print("No chat logs found.")
        return

    date_range = (args.start, args.end) if args.start and args.end else None
    result = derive(rows, date_range)
    save_analytics_files(result, args.output_dir)
    print_summary_report(result["metrics"], result["series"])

    if args.plot and result["series"]:
        path = plot_daily_messages(result["series"], f"{args.output_dir}/daily_messages.png")
        print(f"Chart saved to {path}")

    print(f"\nAnalytics data has been saved to the '{args.output_dir}' directory:")
    print("1. metrics.json - Dialog, retention and contact metrics")
    print("2. daily_messages.json/csv - Messages per day")
    print("3. users.json/csv - Users in first-seen order")


if __name__ == "__main__":
    main()

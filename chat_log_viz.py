"""Render the messages-per-day series as a PNG chart."""

from __future__ import annotations

import argparse
import os

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402


def plot_daily_messages(
    points: list[dict],
    output_path: str = "chat_analytics/daily_messages.png",
) -> str:
    """Plot daily message counts with a 7-day rolling average.

    Args:
        points: List of {"date": "YYYY-MM-DD", "messages": int} dicts.
        output_path: Where to write the PNG.  Parent directories are
            created as needed.

    Returns:
        The path written.

    Raises:
        ValueError: If *points* is empty.
    """
    if not points:
        raise ValueError("No data points to plot")

    df = pd.DataFrame(points)
    df["date"] = pd.to_datetime(df["date"])
    df = df.sort_values("date")
    df["messages_7_day_avg"] = df["messages"].rolling(window=7, min_periods=1).mean()

    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    sns.set_theme(style="whitegrid")
    plt.figure(figsize=(15, 8))
    plt.bar(df["date"], df["messages"], alpha=0.5, color="skyblue", label="Daily Messages")
    sns.lineplot(data=df, x="date", y="messages_7_day_avg", color="red",
                 linewidth=2, label="7-day Average")
    plt.title("Messages per Day", fontsize=14, pad=20)
    plt.xlabel("Date", fontsize=12)
    plt.ylabel("Number of Messages", fontsize=12)
    plt.legend()
    plt.xticks(rotation=45)
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close()
    return output_path


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: plot a daily_messages.csv written by chat_log_summary.py."""
    parser = argparse.ArgumentParser(description="Plot messages per day")
    parser.add_argument("csv_file", nargs="?", default="chat_analytics/daily_messages.csv")
    parser.add_argument("--output", "-o", default="chat_analytics/daily_messages.png")
    args = parser.parse_args(argv)

    try:
        df = pd.read_csv(args.csv_file)
    except FileNotFoundError:
        parser.error(f"File not found: {args.csv_file}")

    try:
        path = plot_daily_messages(df.to_dict("records"), args.output)
    except ValueError as e:
        parser.error(str(e))
    print(f"Chart saved to {path}")


if __name__ == "__main__":
    main()

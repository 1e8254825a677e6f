"""Shared formatting helpers for CLI commands."""

from __future__ import annotations

from datetime import datetime

from rich.text import Text


def format_size(size_bytes: int | None) -> str:
    """Format size in bytes to human-readable format."""
    if size_bytes is None:
        return "-"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


def format_flag(value: bool | None, yes: str = "yes", no: str = "no") -> Text:
    """Format a tri-state flag: green yes, red no, dim unknown."""
    if value is None:
        return Text("never", style="dim")
    return Text(yes, style="green") if value else Text(no, style="red")


def format_timestamp(value: str | None) -> str:
    """Format an ISO timestamp from the status file in local time."""
    if not value:
        return "never"
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return value
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")

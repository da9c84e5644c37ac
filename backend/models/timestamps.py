"""Timestamp parsing for rows coming back from Supabase."""
from datetime import datetime


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO-8601 timestamp, normalising the formats Supabase returns.

    Supabase can return timestamps with a trailing 'Z' and varying microsecond
    precision, which ``datetime.fromisoformat()`` can't always handle.
    """
    timestamp_str = timestamp_str.replace("Z", "+00:00")

    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        head, tail = timestamp_str.split(".", 1)
        for sign in ("+", "-"):
            if sign in tail:
                fraction, tz = tail.split(sign, 1)
                timestamp_str = f"{head}.{fraction[:6].ljust(6, '0')}{sign}{tz}"
                break
        else:
            timestamp_str = f"{head}.{tail[:6].ljust(6, '0')}"

    return datetime.fromisoformat(timestamp_str)

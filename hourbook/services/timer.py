"""Running-timer accounting for the entries of a single timesheet.

An entry is either idle (hours hold the logged time) or running (``start_time``
set, no ``end_time``, hours frozen at the value they had when the timer
started). Stopping adds the elapsed wall-clock hours to the frozen value.
All functions work on entry dicts and return new lists; nothing is written
here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from hourbook.services.time_accounting import elapsed_hours, format_decimal_hours


class TimerInvariantError(ValueError):
    pass


def stop_entry(entry: dict, now: datetime) -> dict:
    # A missing start_time counts as zero elapsed rather than an error.
    # Idle entries accrue nothing, so a repeated stop cannot double count.
    elapsed = elapsed_hours(entry.get("start_time"), now) if entry.get("is_running") is True else 0.0
    return {
        **entry,
        "hours": format_decimal_hours(float(entry.get("hours") or 0) + elapsed),
        "end_time": now,
        "is_running": False,
        "updated_at": now,
    }


def stop_running_entries(entries: list[dict], now: datetime, except_key: Optional[str] = None) -> list[dict]:
    return [
        stop_entry(e, now) if e.get("is_running") is True and e.get("key") != except_key else e
        for e in entries
    ]


def start_entry(entries: list[dict], key: str, now: datetime) -> list[dict]:
    """Start the timer on ``key``, stopping whichever other entry is running."""
    out = stop_running_entries(entries, now, except_key=key)
    return [
        {**e, "start_time": now, "end_time": None, "is_running": True, "updated_at": now} if e.get("key") == key else e
        for e in out
    ]


def stop_timer(entries: list[dict], key: str, now: datetime) -> list[dict]:
    return [stop_entry(e, now) if e.get("key") == key else e for e in entries]


def append_timer_entry(entries: list[dict], entry: dict, now: datetime) -> list[dict]:
    """Append ``entry`` as a freshly started timer with no accumulated hours."""
    out = stop_running_entries(entries, now)
    out.append({
        **entry,
        "hours": 0.0,
        "is_running": True,
        "start_time": entry.get("start_time") or now,
        "end_time": None,
    })
    return out


def repair_running_entries(entries: list[dict], now: datetime) -> list[dict]:
    """Leave at most one entry running: the most recently started one.

    Older documents can hold several running entries; this brings them back
    to a state every mutation accepts.
    """
    running = [e for e in entries if e.get("is_running") is True]
    if len(running) <= 1:
        return entries
    keep = max(running, key=lambda e: e.get("start_time") or datetime.min)
    return stop_running_entries(entries, now, except_key=keep.get("key"))


def check_entry_invariants(entries: list[dict]) -> None:
    running = [e for e in entries if e.get("is_running") is True]
    if len(running) > 1:
        raise TimerInvariantError(f"{len(running)} entries running; at most one allowed")
    for e in entries:
        if float(e.get("hours") or 0) < 0:
            raise TimerInvariantError(f"Entry {e.get('key')} has negative hours")
    for e in running:
        if e.get("end_time") is not None:
            raise TimerInvariantError(f"Running entry {e.get('key')} has an end time")

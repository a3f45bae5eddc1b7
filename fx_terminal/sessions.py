"""
Trading session windows (London, New York, Sydney, Tokyo)
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .config.models import SessionWindow


def _hour(value: str) -> int:
    hour = int(value.split(':')[0])
    if not 0 <= hour <= 23:
        raise ValueError(f"Invalid session hour: {value}")
    return hour


def is_session_open(window: SessionWindow, now: Optional[datetime] = None) -> bool:
    """Whether the UTC hour of now falls inside the window.

    Windows whose end hour is not after the start hour wrap past midnight.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    start, end = _hour(window.start), _hour(window.end)
    if start < end:
        return start <= now.hour < end
    return now.hour >= start or now.hour < end


def session_status(windows: Iterable[SessionWindow], now: Optional[datetime] = None) -> List[Dict]:
    now = now or datetime.now(timezone.utc)
    return [dict(window.to_dict(), is_open=is_session_open(window, now)) for window in windows]


def open_sessions(windows: Iterable[SessionWindow], now: Optional[datetime] = None) -> List[str]:
    return [w.name for w in windows if is_session_open(w, now)]

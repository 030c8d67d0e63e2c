# --- Standard library imports ---
import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from datetime import datetime, timedelta


class TimeService:
    """
    Timezone-aware wall clock for status timestamps and heartbeat logs.

    - TZ loaded once during class initialization (falls back to UTC)
    - Provides:
        * now_local()
        * schedule()
        * format_local()
        * heartbeat_string()
    """

    def __init__(self, tz_name: Optional[str] = None):
        tz_name = tz_name or os.getenv("TZ", "UTC")
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            self.tz = ZoneInfo("UTC")

    # -------------------------
    # Wall clock utilities
    # -------------------------

    def now_local(self) -> datetime:
        """Current time in the configured timezone."""
        return datetime.now(self.tz)

    def schedule(self, interval_s: float) -> tuple[datetime, datetime]:
        """Return (now, now + interval) for last/next check bookkeeping."""
        now = self.now_local()
        return now, now + timedelta(seconds=interval_s)

    def format_local(self, dt: Optional[datetime]) -> str:
        """Format a datetime as 'MM/DD/YY @ HH:MM:SS TZ' ('—' when unknown)."""
        if dt is None:
            return "—"
        return dt.astimezone(self.tz).strftime("%m/%d/%y @ %H:%M:%S %Z")

    def heartbeat_string(self, dt: datetime) -> str:
        """Return 'Sat Dec 07 2025' format."""
        return dt.strftime("%a %b %d %Y")

import datetime
import email.utils as eut
from typing import Any, Dict, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from relay_core.tools.base import BaseTool

_TZ_ALIASES = {
    "eastern": "America/New_York",
    "central": "America/Chicago",
    "mountain": "America/Denver",
    "pacific": "America/Los_Angeles",
    "est": "America/New_York",
    "cst": "America/Chicago",
    "mst": "America/Denver",
    "pst": "America/Los_Angeles",
    "uk": "Europe/London",
    "london": "Europe/London",
}


class TimeTool(BaseTool):
    """Get the current time for a timezone."""

    def __init__(self, clock=None):
        super().__init__()
        self._clock = clock or datetime.datetime.now

    async def run(self, timezone: str = "UTC", format: Literal["iso", "rfc2822", "human"] = "human") -> Dict[str, Any]:
        """
        Get the current time for a timezone in various formats.
        Args:
            timezone: IANA timezone (e.g., Europe/Dublin, America/New_York, UTC). Defaults to UTC.
            format: The format for the returned time string (iso, rfc2822 or human).
        Returns:
            dict: {"time": <formatted time string>, "timezone": <resolved zone>}
        """
        timezone = _TZ_ALIASES.get(str(timezone).lower(), timezone)
        try:
            now = self._clock(ZoneInfo(timezone))
        except (ZoneInfoNotFoundError, ValueError):
            return {"time": None, "error": f"Unknown timezone: {timezone}"}

        if format == "iso":
            text = now.isoformat()
        elif format == "rfc2822":
            text = eut.format_datetime(now)
        else:
            text = f"{now.strftime('%I:%M:%S %p')} on {now.strftime('%A, %B %d, %Y')} ({now.strftime('%Z')})"
        return {"time": text, "timezone": timezone}

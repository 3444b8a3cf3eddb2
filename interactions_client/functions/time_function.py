import datetime
import email.utils as eut
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from interactions_client.functions.base import BaseFunction

TIMEZONE_ALIASES = {
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


class CurrentTimeFunction(BaseFunction):
    """Get the current time for a timezone in various formats."""

    function_name = "get_current_time"

    async def run(
        self,
        timezone: str = "UTC",
        format: Literal["iso", "rfc2822", "human"] = "human",
    ) -> dict:
        """
        Args:
            timezone: IANA timezone (e.g., Europe/Dublin, America/New_York, UTC). Defaults to UTC.
            format: Output format, one of "iso", "rfc2822" or "human".
        Returns:
            dict: {"time": <formatted time string>, "timezone": <resolved zone>}
        """
        timezone = TIMEZONE_ALIASES.get(timezone.lower(), timezone) if isinstance(timezone, str) else "UTC"
        try:
            now = datetime.datetime.now(ZoneInfo(timezone))
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {timezone}") from None

        if format == "iso":
            return {"time": now.isoformat(), "timezone": timezone}
        if format == "rfc2822":
            return {"time": eut.format_datetime(now), "timezone": timezone}

        time_str = now.strftime("%I:%M:%S %p")
        date_str = now.strftime("%A, %B %d, %Y")
        readable_tz = timezone.replace("_", " ").replace("/", ", ")
        return {"time": f"{time_str} on {date_str} ({now.strftime('%Z')} - {readable_tz})", "timezone": timezone}

"""
Date/time plugin for the threadbot conversation loop.

Returns the current date and time, optionally for a named IANA timezone.
The result is *intermediate*: the JSON payload is handed back to the model,
which phrases the actual answer in the next round.

If an unrecognised timezone key is supplied the result falls back to UTC and
includes an ``"error"`` field describing the problem.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult

logger = logging.getLogger(__name__)


class DateTimePlugin(PluginBase):
    """Reports the current date and time, with optional timezone support."""

    key = "get_current_datetime"
    description = (
        "Get the current date and time. "
        "Returns the date, time, day of the week, and Unix timestamp. "
        "Optionally accepts an IANA timezone name such as "
        "'America/New_York' or 'Europe/London'; defaults to UTC."
    )
    plugin_arguments = {
        "timezone": {
            "type": "string",
            "description": (
                "IANA timezone name, e.g. 'America/Chicago', "
                "'Europe/Paris', 'Asia/Tokyo'. "
                "Omit or leave empty for UTC."
            ),
        }
    }

    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        result = self.get_datetime(arguments.get("timezone") or None)
        return PluginResult(message=json.dumps(result), intermediate=True)

    def get_datetime(self, timezone_name: str | None = None) -> dict[str, Any]:
        """Return the current date and time.

        Args:
            timezone_name: IANA timezone name (e.g. ``"America/New_York"``).
                ``None`` or an empty string defaults to UTC.

        Returns:
            A dict with keys ``datetime_iso``, ``date``, ``time``,
            ``timezone``, ``day_of_week`` and ``unix_timestamp``, plus
            ``error`` if the requested timezone was invalid.
        """
        tz, tz_error = self._resolve_timezone(timezone_name)
        now = datetime.now(tz=tz)

        result: dict[str, Any] = {
            "datetime_iso": now.isoformat(timespec="seconds"),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "timezone": str(tz),
            "day_of_week": now.strftime("%A"),
            "unix_timestamp": int(now.timestamp()),
        }
        if tz_error:
            result["error"] = tz_error
        return result

    def _resolve_timezone(self, timezone_name: str | None) -> tuple[tzinfo, str | None]:
        if not timezone_name:
            return timezone.utc, None
        try:
            return ZoneInfo(timezone_name), None
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone: %r; falling back to UTC", timezone_name)
            return timezone.utc, (
                f"Unknown timezone {timezone_name!r}; showing UTC instead."
            )

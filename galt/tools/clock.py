"""
Clock Tool
==========

The current time in any IANA timezone, in one of three formats:

- iso:   2025-03-02T14:05:09.123456+00:00
- human: Sunday, March 02, 2025 at 02:05:09 PM UTC
- unix:  1740924309
"""

from datetime import datetime
from typing import Callable, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from galt.tools import Tool


class TimeArgs(BaseModel):
    timezone: str = Field(
        default="UTC",
        description='Timezone (e.g., "America/New_York", "UTC"). Defaults to UTC'
    )
    format: Literal["iso", "human", "unix"] = Field(
        default="human",
        description="Output format. Defaults to human-readable"
    )


def create_time_tool(clock: Callable[[ZoneInfo], datetime] = datetime.now) -> Tool:
    """
    Build the get_time tool.

    Args:
        clock: Returns the current time in a zone (injectable for tests)
    """

    async def get_time(args: TimeArgs) -> dict:
        try:
            zone = ZoneInfo(args.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Invalid timezone: {args.timezone}") from e

        now = clock(zone)

        if args.format == "iso":
            time_string = now.isoformat()
        elif args.format == "unix":
            time_string = str(int(now.timestamp()))
        else:
            time_string = now.strftime("%A, %B %d, %Y at %I:%M:%S %p %Z")

        return {
            "time": time_string,
            "timezone": args.timezone,
            "format": args.format,
            "timestamp": int(now.timestamp() * 1000),
        }

    return Tool(
        name="get_time",
        description="Gets current time information in various formats",
        args_model=TimeArgs,
        execute=get_time,
    )


time_tool = create_time_tool()

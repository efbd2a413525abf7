"""Current time tool."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel

from toolbot.tool.base import BaseTool, NoParams, ToolOk, ToolResult


def format_timestamp(moment: datetime) -> str:
    """Format like ``Monday, January 2, 2006 at 3:04 PM MST``."""
    hour = moment.hour % 12 or 12
    zone = moment.strftime("%Z")
    text = f"{moment:%A, %B} {moment.day}, {moment:%Y} at {hour}:{moment:%M %p}"
    return f"{text} {zone}" if zone else text


class TimeTool(BaseTool[NoParams]):
    """Report the local date and time."""

    name: ClassVar[str] = "get_current_time"
    description: ClassVar[str] = "Get the current date and time"
    param_model: ClassVar[type[BaseModel]] = NoParams

    async def execute(self, params: NoParams) -> ToolResult:
        return ToolOk(output=format_timestamp(datetime.now().astimezone()))

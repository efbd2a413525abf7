"""Built-in tools."""

from toolbot.tool.builtin.bash import BashTool
from toolbot.tool.builtin.calendar import CalendarTool
from toolbot.tool.builtin.clock import TimeTool
from toolbot.tool.builtin.oci import OCITool
from toolbot.tool.builtin.python import PythonTool
from toolbot.tool.builtin.scrape import ScrapeTool

__all__ = [
    "BashTool",
    "CalendarTool",
    "TimeTool",
    "OCITool",
    "PythonTool",
    "ScrapeTool",
]

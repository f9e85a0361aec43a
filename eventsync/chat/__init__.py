"""Tool execution for the chat assistant."""

from .tools import CALENDAR_TOOLS, ChatToolbox

__all__ = ["CALENDAR_TOOLS", "ChatToolbox"]

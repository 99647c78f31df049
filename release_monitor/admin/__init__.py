"""
Administrative command surface over Telegram.
"""

from .commands import AdminCommandHandler, CommandKind, parse_command
from .bot import AdminBot

__all__ = ["AdminCommandHandler", "CommandKind", "parse_command", "AdminBot"]

"""
Notification composition and Telegram delivery.
"""

from .composer import render
from .telegram_publisher import TelegramPublisher, chunk_message, is_permanent_error

__all__ = ["render", "TelegramPublisher", "chunk_message", "is_permanent_error"]

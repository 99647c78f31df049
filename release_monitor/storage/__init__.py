"""
Durable storage for tracked repositories, chats and processing state.
"""

from .database import ReleaseLedger

__all__ = ["ReleaseLedger"]

"""
GitHub Release Monitor

Polls tracked GitHub repositories for new releases, summarizes their
changelogs and broadcasts notifications to Telegram chats.
"""

__version__ = "1.0.0"
__author__ = "Release Monitor"

"""
Release notification rendering in Telegram's HTML subset.
"""

import html
from datetime import datetime, timezone, tzinfo
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..summarization.changelog import extract_bullets

MAX_DISPLAYED_BULLETS = 4


def resolve_timezone(name: str) -> tzinfo:
    """Look up an IANA time zone, falling back to UTC for unknown names."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def format_published(published_at: datetime, tz_name: str) -> str:
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return published_at.astimezone(resolve_timezone(tz_name)).strftime("%Y-%m-%d %H:%M")


def render(
    repo_full_name: str,
    tag: str,
    url: str,
    body_markup: str,
    published_at: datetime,
    commentary: Optional[str] = "",
    tz_name: str = "UTC",
    max_bullets: int = 8,
    max_chars: int = 2500,
    bullets: Optional[List[str]] = None,
) -> str:
    """
    Render a release notification.
    
    Args:
        repo_full_name: ``owner/name`` of the repository
        tag: Release tag
        url: Link to the release page
        body_markup: Raw changelog markdown
        published_at: Publication time of the release
        commentary: Optional advisor commentary
        tz_name: Time zone used for the displayed date
        max_bullets: Extraction cap passed to the summarizer
        max_chars: Prose cap passed to the summarizer
        bullets: Already extracted bullets; extracted from ``body_markup`` when omitted
        
    Returns:
        HTML-formatted message text
    """
    if bullets is None:
        bullets = extract_bullets(body_markup, max_bullets, max_chars)
    safe_url = html.escape(url, quote=True)
    
    parts = [
        f'🔥 <b>{html.escape(repo_full_name)}</b> '
        f'<a href="{safe_url}">{html.escape(tag)}</a>',
        f"📅 {format_published(published_at, tz_name)}",
    ]
    
    if bullets:
        parts.append("")
        for bullet in bullets[:MAX_DISPLAYED_BULLETS]:
            parts.append(f"▪️ {html.escape(bullet)}")
        if len(bullets) > MAX_DISPLAYED_BULLETS:
            parts.append(f"<i>… and {len(bullets) - MAX_DISPLAYED_BULLETS} more changes</i>")
    
    parts.append("")
    parts.append(f'<a href="{safe_url}">📖 Full changelog</a>')
    
    if commentary and commentary.strip():
        parts.append("")
        parts.append(f"💡 {html.escape(commentary.strip())}")
    
    return "\n".join(parts)

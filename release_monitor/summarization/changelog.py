"""
Changelog to bullet point extraction.

Release notes are scanned for list items first. When a changelog has no
usable list items, the first meaningful lines of prose are used instead.
"""

import re
from typing import List

BULLET_PATTERN = re.compile(r'^\s*[-*•]\s+(.+)$', re.MULTILINE)
HEX_TOKEN_PATTERN = re.compile(r'[0-9a-f]{8,}', re.IGNORECASE)
IMAGE_PATTERN = re.compile(r'!\[([^\]]*)\]\([^)]*\)')
LINK_PATTERN = re.compile(r'\[([^\]]+)\]\([^)]*\)')
EMPHASIS_PATTERN = re.compile(r'[_*~#>]+')
WHITESPACE_PATTERN = re.compile(r'\s+')

BINARY_EXTENSIONS = (
    ".zip", ".tar.gz", ".tgz", ".exe", ".dmg", ".msi",
    ".deb", ".rpm", ".whl", ".jar", ".apk",
)

MIN_BULLET_CHARS = 15
MAX_BULLET_CHARS = 200
BULLET_TRUNCATE_CHARS = 140
MIN_PARAGRAPH_CHARS = 10
MAX_PARAGRAPH_CHARS = 200
ELLIPSIS = "…"


def strip_formatting(text: str) -> str:
    """Remove inline markdown, keeping the visible text of links and images."""
    text = text.replace("`", "")
    text = IMAGE_PATTERN.sub(r"\1", text)
    text = LINK_PATTERN.sub(r"\1", text)
    text = EMPHASIS_PATTERN.sub("", text)
    text = WHITESPACE_PATTERN.sub(" ", text)
    return text.strip()


def is_noise(bullet: str) -> bool:
    """Check whether a cleaned bullet is technical noise not worth showing."""
    lowered = bullet.lower()
    
    # Commit hashes and checksums
    if HEX_TOKEN_PATTERN.search(lowered):
        return True
    
    # Version bumps and dependency updates
    if "bump" in lowered or "update" in lowered:
        if "version" in lowered or "dependency" in lowered or "dependencies" in lowered:
            return True
    
    if any(ext in lowered for ext in BINARY_EXTENSIONS):
        return True
    
    if "<!--" in lowered:
        return True
    
    return len(bullet) < MIN_BULLET_CHARS or len(bullet) > MAX_BULLET_CHARS


def is_mostly_uppercase(text: str) -> bool:
    """True when more than 80% of the letters are uppercase (likely a header)."""
    if len(text) < 3:
        return False
    
    letters = [c for c in text if c.isalpha()]
    if not letters:
        return False
    
    upper = sum(1 for c in letters if c.isupper())
    return upper / len(letters) > 0.8


def extract_bullets(markup: str, max_bullets: int = 8, max_chars: int = 2500) -> List[str]:
    """
    Extract short, human readable bullet points from release notes.
    
    Args:
        markup: Raw changelog markdown
        max_bullets: Maximum number of bullets to return
        max_chars: Maximum amount of prose considered by the paragraph fallback
        
    Returns:
        Cleaned bullets in source order
    """
    if not markup or max_bullets <= 0:
        return []
    
    bullets = []
    
    for match in BULLET_PATTERN.finditer(markup):
        raw = match.group(1).strip()
        if "<!--" in raw:
            continue
        
        bullet = strip_formatting(raw)
        if is_noise(bullet):
            continue
        
        if len(bullet) > BULLET_TRUNCATE_CHARS:
            bullet = bullet[:BULLET_TRUNCATE_CHARS] + ELLIPSIS
        
        bullets.append(bullet)
        if len(bullets) >= max_bullets:
            break
    
    if not bullets:
        bullets = extract_paragraphs(markup, max_bullets, max_chars)
    
    return bullets


def extract_paragraphs(markup: str, max_bullets: int, max_chars: int) -> List[str]:
    """Fallback for changelogs written as prose rather than lists."""
    lines = []
    for line in markup.splitlines():
        # Markdown headers are dropped before their '#' is stripped away
        if line.lstrip().startswith("#"):
            continue
        lines.append(strip_formatting(line))
    
    text = "\n".join(lines).strip()
    if len(text) > max_chars:
        text = text[:max_chars] + ELLIPSIS
    
    paragraphs = []
    for para in text.split("\n"):
        para = para.strip()
        
        if len(para) < MIN_PARAGRAPH_CHARS:
            continue
        if para.startswith("#") or is_mostly_uppercase(para):
            continue
        
        if len(para) > MAX_PARAGRAPH_CHARS:
            para = para[:MAX_PARAGRAPH_CHARS] + ELLIPSIS
        
        paragraphs.append(para)
        if len(paragraphs) >= max_bullets:
            break
    
    return paragraphs

"""
Changelog summarization and optional LLM commentary.
"""

from .changelog import extract_bullets, strip_formatting
from .advisor import OpenRouterAdvisor, NullAdvisor, build_advisor

__all__ = [
    "extract_bullets", "strip_formatting",
    "OpenRouterAdvisor", "NullAdvisor", "build_advisor",
]

"""
OpenRouter API integration for release commentary.

The advisor is optional. ``build_advisor`` returns a ``NullAdvisor`` when it
is disabled or unconfigured so the pipeline calls ``advise`` unconditionally.
"""

import re
from typing import List, Optional

import requests
import structlog

from ..core.config import Settings
from ..core.errors import AdvisorError

logger = structlog.get_logger(__name__)

DISABLED_SENTINEL = "disabled"
MAX_COMMENTARY_CHARS = 600

SYSTEM_PROMPT = """You are an experienced DevOps engineer reviewing software releases for other engineers.
Answer STRICTLY in this format:

🔧 KEY CHANGES:
• [specific change]
• [specific change]

⚠️ IMPORTANT:
• [what to know before upgrading]

Keep it short, 3-4 points at most. No headings, no numbering, no extra text. Only practical value for engineers."""

BOILERPLATE_PHRASES = (
    "Release notes analysis",
    "Release analysis",
    "Analysis of the release",
    "Here is my analysis:",
    "Here is the analysis:",
)


class NullAdvisor:
    """Advisor used when commentary is disabled; always returns nothing."""
    
    model = None
    enabled = False
    
    def advise(self, repo_full_name: str, tag: str, bullets: List[str]) -> str:
        return ""
    
    def health_check(self) -> Optional[bool]:
        return None


class OpenRouterAdvisor:
    """Release commentary using the OpenRouter chat completions API."""
    
    enabled = True
    
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 15.0,
        max_tokens: int = 350,
        base_url: str = "https://openrouter.ai/api/v1",
        session: Optional[requests.Session] = None,
        logger=None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.base_url = base_url.rstrip("/")
        self.logger = logger or structlog.get_logger(__name__)
        
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/release-monitor",
            "X-Title": "Release Monitor"
        })
    
    def advise(self, repo_full_name: str, tag: str, bullets: List[str]) -> str:
        """
        Generate a short commentary about a release.
        
        Args:
            repo_full_name: ``owner/name`` of the repository
            tag: Release tag
            bullets: Bullets extracted from the changelog
            
        Returns:
            Cleaned commentary, possibly empty
            
        Raises:
            AdvisorError: on transport failures or API-reported errors
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(repo_full_name, tag, bullets)}
            ],
            "max_tokens": self.max_tokens
        }
        
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise AdvisorError(f"openrouter request failed: {e}") from e
        
        if response.status_code != 200:
            raise AdvisorError(f"openrouter returned status {response.status_code}: {response.text[:200]}")
        
        try:
            data = response.json()
        except ValueError as e:
            raise AdvisorError(f"failed to decode openrouter response: {e}") from e
        
        if not isinstance(data, dict):
            data = {}
        
        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise AdvisorError(f"openrouter error: {message}")
        
        if not data.get("choices"):
            raise AdvisorError("no choices in openrouter response")
        
        content = (data["choices"][0].get("message") or {}).get("content") or ""
        commentary = format_commentary(content.strip())
        
        self.logger.info("Generated release commentary",
                         repo=repo_full_name,
                         tag=tag,
                         length=len(commentary))
        return commentary
    
    def health_check(self) -> bool:
        """Check OpenRouter API connectivity and authentication."""
        try:
            response = self.session.post(
                f"{self.base_url}/chat/completions",
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": "Test"}],
                    "max_tokens": 5
                },
                timeout=self.timeout
            )
            
            if response.status_code == 200:
                self.logger.info("OpenRouter health check passed", model=self.model)
                return True
            
            self.logger.error("OpenRouter health check failed",
                              status_code=response.status_code,
                              response=response.text[:200])
            return False
            
        except Exception as e:
            self.logger.error("OpenRouter health check failed", error=str(e))
            return False


def build_advisor(settings: Settings, logger=None):
    """Pick the advisor implementation for the current configuration."""
    api_key = settings.openrouter_api_key.strip()
    
    if not settings.advisor_enabled:
        return NullAdvisor()
    if not api_key or not settings.openrouter_model or api_key == DISABLED_SENTINEL:
        (logger or structlog.get_logger(__name__)).warning(
            "Advisor enabled but not configured, commentary disabled")
        return NullAdvisor()
    
    return OpenRouterAdvisor(
        api_key=api_key,
        model=settings.openrouter_model,
        timeout=settings.advisor_timeout_seconds,
        logger=logger
    )


def build_prompt(repo_full_name: str, tag: str, bullets: List[str]) -> str:
    changes = "; ".join(bullets) if bullets else "No changelog provided."
    
    return (
        f"Release: {repo_full_name} {tag}\n\n"
        f"Changes:\n{changes}\n\n"
        "Analyse what matters for DevOps engineers and developers. "
        "Follow the format from the system prompt STRICTLY."
    )


def format_commentary(content: str, max_length: int = MAX_COMMENTARY_CHARS) -> str:
    """Clean up LLM output and bound its length for chat delivery."""
    if not content:
        return ""
    
    content = content.replace("**", "").replace("*", "").replace("#", "")
    content = re.sub(r'(?m)^\s*(\d+)\.\s*', r'\1. ', content)
    
    content = re.sub(r'\s+', ' ', content)
    for phrase in BOILERPLATE_PHRASES:
        content = content.replace(phrase, "")
    
    # Section markers and list items each start a new line
    content = re.sub(r'\s*🔧\s*', '\n🔧 ', content)
    content = re.sub(r'\s*⚠️\s*', '\n\n⚠️ ', content)
    content = re.sub(r'\s*•\s*', '\n• ', content)
    content = re.sub(r'\n{3,}', '\n\n', content)
    content = content.strip()
    
    if len(content) <= max_length:
        return content
    
    limit = max_length - 10
    
    truncated = ""
    for sentence in content.split(". "):
        candidate = truncated + sentence + ". "
        if len(candidate) > limit:
            break
        truncated = candidate
    
    if truncated:
        truncated = truncated.strip()
        if not truncated.endswith("."):
            truncated += "."
        return truncated
    
    truncated = ""
    for word in content.split():
        candidate = f"{truncated} {word}" if truncated else word
        if len(candidate) > limit:
            break
        truncated = candidate
    
    return truncated.strip() + "…"

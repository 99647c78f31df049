"""
Telegram bot integration for delivering release notifications.
"""

import threading
import time
from typing import List, Optional, Dict, Any

import requests
import structlog

from ..core.errors import DeliveryError, PermanentDeliveryError

logger = structlog.get_logger(__name__)

MAX_MESSAGE_CHARS = 4000

# Failure descriptions that retrying cannot fix
PERMANENT_ERROR_SIGNATURES = (
    "chat not found",
    "bot was blocked by the user",
    "bot was kicked",
    "user is deactivated",
    "text must be encoded in utf-8",
    "message is too long",
    "can't parse entities",
    "forbidden",
)


def is_permanent_error(description: str) -> bool:
    """Classify a Telegram failure description as permanent."""
    lowered = (description or "").lower()
    return any(signature in lowered for signature in PERMANENT_ERROR_SIGNATURES)


def chunk_message(text: str, max_size: int = MAX_MESSAGE_CHARS) -> List[str]:
    """
    Split a message into chunks of at most ``max_size`` characters.
    
    A chunk ends after the last newline in the back half of the window, or
    failing that after the last space there; otherwise it is cut hard.
    """
    if len(text) <= max_size:
        return [text]
    
    chunks = []
    remaining = text
    
    while len(remaining) > max_size:
        window = remaining[:max_size]
        
        break_point = window.rfind("\n") + 1
        if break_point <= max_size // 2 + 1:
            break_point = window.rfind(" ") + 1
        if break_point <= max_size // 2 + 1:
            break_point = max_size
        
        chunks.append(remaining[:break_point])
        remaining = remaining[break_point:].lstrip("\n ")
    
    if remaining:
        chunks.append(remaining)
    
    return chunks


class TelegramPublisher:
    """Publisher for Telegram chats via the bot API."""
    
    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        chunk_delay: float = 0.1,
        timeout: float = 30.0,
        cancel_event: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
        logger=None,
    ):
        self.bot_token = bot_token
        self.base_url = f"{api_url.rstrip('/')}/bot{bot_token}"
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.chunk_delay = chunk_delay
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.logger = logger or structlog.get_logger(__name__)
        
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json"
        })
        
        # Message length limits
        self.max_message_length = MAX_MESSAGE_CHARS
    
    def send(self, destination_id: int, message: str) -> bool:
        """
        Send an HTML message to a chat, splitting it if it is too long.
        
        Raises:
            PermanentDeliveryError: the chat rejected the message for good
            DeliveryError: transient failures persisted through all retries
        """
        chunks = chunk_message(message, self.max_message_length)
        
        for index, chunk in enumerate(chunks):
            self._send_chunk(destination_id, chunk)
            
            # Small delay between chunks to avoid rate limiting
            if index < len(chunks) - 1:
                self._pause(self.chunk_delay)
        
        self.logger.debug("Delivered message", chat_id=destination_id, chunks=len(chunks))
        return True
    
    def _send_chunk(self, chat_id: int, text: str) -> Dict[str, Any]:
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True
        }
        
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._call("sendMessage", payload)
            except PermanentDeliveryError:
                raise
            except DeliveryError as e:
                last_error = e
                self.logger.warning("Telegram send failed, retrying",
                                    chat_id=chat_id,
                                    attempt=attempt,
                                    error=str(e))
                if attempt < self.max_attempts:
                    self._pause(self.retry_delay * attempt)
        
        raise DeliveryError(f"failed to send message after {self.max_attempts} attempts: {last_error}")
    
    def _call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Invoke a bot API method and return its ``result``."""
        try:
            response = self.session.post(
                f"{self.base_url}/{method}",
                json=payload,
                timeout=timeout or self.timeout
            )
        except requests.RequestException as e:
            raise DeliveryError(f"telegram request failed: {e}") from e
        
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        
        if response.status_code == 200 and data.get("ok"):
            return data.get("result") or {}
        
        description = data.get("description") or f"HTTP {response.status_code}"
        if is_permanent_error(description):
            raise PermanentDeliveryError(description)
        raise DeliveryError(description)
    
    def _pause(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self.cancel_event is not None:
            if self.cancel_event.wait(seconds):
                raise DeliveryError("delivery cancelled")
        else:
            time.sleep(seconds)
    
    def get_updates(self, offset: int = 0, timeout: int = 30) -> List[Dict[str, Any]]:
        """Long-poll for bot updates newer than ``offset``."""
        result = self._call(
            "getUpdates",
            {"offset": offset, "timeout": timeout, "allowed_updates": ["message"]},
            timeout=timeout + 10
        )
        return result if isinstance(result, list) else []
    
    def reply(self, chat_id: int, text: str) -> None:
        """Send a single admin response without retries."""
        for chunk in chunk_message(text, self.max_message_length):
            self._call("sendMessage", {
                "chat_id": chat_id,
                "text": chunk,
                "parse_mode": "HTML",
                "disable_web_page_preview": True
            })
    
    def health_check(self) -> bool:
        """Check Telegram bot connectivity and authentication."""
        try:
            bot_info = self._call("getMe", {}, timeout=10)
            self.logger.info("Telegram health check passed",
                             bot_username=bot_info.get("username"),
                             bot_name=bot_info.get("first_name"))
            return True
        except Exception as e:
            self.logger.error("Telegram health check failed", error=str(e))
            return False

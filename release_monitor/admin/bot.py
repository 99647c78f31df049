"""
Long-polling listener that feeds Telegram messages to the admin handler.
"""

import threading
from typing import Iterable, Optional

import structlog

from ..core.errors import DeliveryError, LedgerError
from ..publishing.telegram_publisher import TelegramPublisher
from .commands import AdminCommandHandler, parse_command

logger = structlog.get_logger(__name__)

OFFSET_SETTING = "admin_update_offset"


class AdminBot:
    """Receives commands from allow-listed Telegram users."""
    
    def __init__(
        self,
        publisher: TelegramPublisher,
        handler: AdminCommandHandler,
        allowed_user_ids: Iterable[int],
        cancel_event: Optional[threading.Event] = None,
        poll_timeout: int = 30,
        error_backoff: float = 5.0,
        logger=None,
    ):
        self.publisher = publisher
        self.handler = handler
        self.allowed_user_ids = set(allowed_user_ids)
        self.cancel_event = cancel_event or threading.Event()
        self.poll_timeout = poll_timeout
        self.error_backoff = error_backoff
        self.logger = logger or structlog.get_logger(__name__)
        
        self.offset = self._load_offset()
        self._thread: Optional[threading.Thread] = None
    
    def start(self) -> None:
        self._thread = threading.Thread(target=self.poll_forever, name="admin-bot", daemon=True)
        self._thread.start()
        self.logger.info("Bot commands enabled", allowed_users=sorted(self.allowed_user_ids))
    
    def poll_forever(self) -> None:
        while not self.cancel_event.is_set():
            try:
                self.poll_once()
            except DeliveryError as e:
                self.logger.warning("Failed to fetch bot updates", error=str(e))
                self.cancel_event.wait(self.error_backoff)
            except Exception as e:
                self.logger.exception("Unexpected error in admin listener", error=str(e))
                self.cancel_event.wait(self.error_backoff)
    
    def poll_once(self) -> int:
        """Fetch and handle one batch of updates. Returns the number handled."""
        updates = self.publisher.get_updates(offset=self.offset, timeout=self.poll_timeout)
        
        for update in updates:
            self.offset = max(self.offset, update.get("update_id", 0) + 1)
            message = update.get("message")
            if message:
                self.handle_message(message)
        
        if updates:
            self._store_offset()
        
        return len(updates)
    
    def handle_message(self, message: dict) -> Optional[str]:
        """Handle one incoming message; returns the reply sent, if any."""
        user_id = (message.get("from") or {}).get("id")
        chat_id = (message.get("chat") or {}).get("id")
        
        if user_id not in self.allowed_user_ids or chat_id is None:
            return None
        
        text = message.get("text") or ""
        if not text.startswith("/"):
            return None
        
        kind, args = parse_command(text)
        self.logger.info("Processing command",
                         command=kind.value if kind else text.split()[0],
                         args=args,
                         user_id=user_id,
                         chat_id=chat_id)
        
        if kind is None:
            response = "Unknown command. Use /help for available commands."
        else:
            response = self.handler.handle(kind, args, chat_id)
        
        try:
            self.publisher.reply(chat_id, response)
        except DeliveryError as e:
            self.logger.error("Failed to send command response", chat_id=chat_id, error=str(e))
        return response
    
    def _load_offset(self) -> int:
        """Resume after the last update acknowledged before a restart."""
        try:
            return int(self.handler.ledger.get_setting(OFFSET_SETTING, "0"))
        except (LedgerError, ValueError) as e:
            self.logger.warning("Failed to load update offset", error=str(e))
            return 0
    
    def _store_offset(self) -> None:
        try:
            self.handler.ledger.set_setting(OFFSET_SETTING, str(self.offset))
        except LedgerError as e:
            self.logger.warning("Failed to store update offset", error=str(e))

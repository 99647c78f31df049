"""
Admin command parsing and dispatch.

Commands form a closed set: ``CommandKind`` lists every command the bot
understands and ``AdminCommandHandler.handle`` switches over it explicitly.
"""

import html
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Tuple

import structlog

from ..core.errors import AdvisorError, DeliveryError, LedgerError
from ..publishing.composer import render
from ..storage.database import ReleaseLedger

logger = structlog.get_logger(__name__)


class CommandKind(str, Enum):
    """Admin commands, named as typed after the slash."""
    ADD_REPO = "addrepo"
    DEL_REPO = "delrepo"
    LIST = "list"
    SET_CHAT = "setchat"
    DEL_CHAT = "delchat"
    CHATS = "chats"
    FORCE_CHECK = "forcecheck"
    TEST_NOTIFY = "testnotify"
    TEST_LLM = "testllm"
    TEST = "test"
    HELP = "help"


HELP_TEXT = """<b>Available commands:</b>

/addrepo owner/repo [--pre] - Add repository to track
/delrepo owner/repo - Remove repository from tracking
/list - List all tracked repositories
/setchat [chat_id] - Add current or specified chat for notifications
/delchat [chat_id] - Remove current or specified chat
/chats - List chats receiving notifications
/forcecheck - Manually trigger release check
/testnotify - Show example of release notification
/testllm - Test LLM advisor on a sample release
/test - Test bot functionality
/help - Show this help message

<b>Examples:</b>
/addrepo golang/go
/addrepo kubernetes/kubernetes --pre
/delrepo golang/go
/setchat -1001234567890"""

SAMPLE_REPOSITORY = "golang/go"
SAMPLE_TAG = "go1.22.0"
SAMPLE_URL = "https://github.com/golang/go/releases/tag/go1.22.0"
SAMPLE_BODY = """## Highlights

- Performance improvements in the compiler and runtime
- New features in the standard library including enhanced HTTP routing
- Security fixes and stability improvements across multiple packages
- Better error messages and debugging experience
- Loop variables are now created per iteration
"""


def parse_command(text: str) -> Tuple[Optional[CommandKind], str]:
    """
    Split a message into its command kind and argument string.
    
    ``/cmd@BotName args`` is accepted. Unknown commands yield ``None``.
    """
    text = (text or "").strip()
    if not text.startswith("/"):
        return None, ""
    
    head, _, args = text.partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    
    try:
        return CommandKind(name), args.strip()
    except ValueError:
        return None, args.strip()


def parse_repository(arg: str) -> Optional[Tuple[str, str]]:
    parts = arg.strip().split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


class AdminCommandHandler:
    """Executes admin commands against the ledger and the scheduler."""
    
    def __init__(
        self,
        ledger: ReleaseLedger,
        trigger_check: Optional[Callable[[], bool]] = None,
        advisor=None,
        publisher=None,
        timezone_name: str = "UTC",
        logger=None,
    ):
        self.ledger = ledger
        self.trigger_check = trigger_check
        self.advisor = advisor
        self.publisher = publisher
        self.timezone_name = timezone_name
        self.logger = logger or structlog.get_logger(__name__)
    
    def handle(self, kind: CommandKind, args: str = "", chat_id: int = 0) -> str:
        """Run a command and return the HTML response text."""
        try:
            if kind == CommandKind.ADD_REPO:
                return self._add_repo(args)
            elif kind == CommandKind.DEL_REPO:
                return self._del_repo(args)
            elif kind == CommandKind.LIST:
                return self._list_repos()
            elif kind == CommandKind.SET_CHAT:
                return self._set_chat(args, chat_id)
            elif kind == CommandKind.DEL_CHAT:
                return self._del_chat(args, chat_id)
            elif kind == CommandKind.CHATS:
                return self._list_chats()
            elif kind == CommandKind.FORCE_CHECK:
                return self._force_check()
            elif kind == CommandKind.TEST_NOTIFY:
                return self._test_notify(chat_id)
            elif kind == CommandKind.TEST_LLM:
                return self._test_llm()
            elif kind == CommandKind.TEST:
                return "✅ Bot is working!"
            elif kind == CommandKind.HELP:
                return HELP_TEXT
            else:
                return "Unknown command. Use /help for available commands."
        except LedgerError as e:
            self.logger.error("Command execution failed", command=kind.value, error=str(e))
            return f"❌ Error: {html.escape(str(e))}"
    
    def _add_repo(self, args: str) -> str:
        parts = args.split()
        if not parts:
            return "Usage: /addrepo owner/repo [--pre]"
        
        repository = parse_repository(parts[0])
        if repository is None:
            return "Invalid format. Use: owner/repo"
        
        owner, name = repository
        track_prereleases = "--pre" in parts[1:]
        self.ledger.add_repository(owner, name, track_prereleases)
        
        suffix = " (including prereleases)" if track_prereleases else ""
        return f"✅ Added repository <b>{html.escape(owner)}/{html.escape(name)}</b>{suffix}"
    
    def _del_repo(self, args: str) -> str:
        repository = parse_repository(args)
        if repository is None:
            return "Usage: /delrepo owner/repo"
        
        owner, name = repository
        if not self.ledger.remove_repository(owner, name):
            return f"Repository <b>{html.escape(owner)}/{html.escape(name)}</b> is not tracked"
        return f"✅ Removed repository <b>{html.escape(owner)}/{html.escape(name)}</b>"
    
    def _list_repos(self) -> str:
        repositories = self.ledger.list_repositories()
        if not repositories:
            return "No repositories are being tracked."
        
        lines = ["<b>Tracked repositories:</b>", ""]
        for repository in repositories:
            line = f"• <b>{html.escape(repository.full_name)}</b>"
            if repository.track_prereleases:
                line += " (with prereleases)"
            lines.append(line)
        return "\n".join(lines)
    
    def _resolve_chat_id(self, args: str, current_chat_id: int) -> Optional[int]:
        if not args.strip():
            return current_chat_id
        try:
            return int(args.strip())
        except ValueError:
            return None
    
    def _set_chat(self, args: str, current_chat_id: int) -> str:
        chat_id = self._resolve_chat_id(args, current_chat_id)
        if chat_id is None:
            return "Invalid chat ID format"
        
        label = "Current Chat" if chat_id == current_chat_id else f"Chat {chat_id}"
        self.ledger.add_destination(chat_id, label)
        return f"✅ Chat <b>{chat_id}</b> has been added to notifications"
    
    def _del_chat(self, args: str, current_chat_id: int) -> str:
        chat_id = self._resolve_chat_id(args, current_chat_id)
        if chat_id is None:
            return "Invalid chat ID format"
        
        if not self.ledger.remove_destination(chat_id):
            return f"Chat <b>{chat_id}</b> was not registered"
        return f"✅ Chat <b>{chat_id}</b> has been removed from notifications"
    
    def _list_chats(self) -> str:
        destinations = self.ledger.list_destinations()
        if not destinations:
            return "No chats are registered for notifications."
        
        lines = ["<b>Notification chats:</b>", ""]
        for destination in destinations:
            lines.append(f"• <code>{destination.id}</code> {html.escape(destination.label)}")
        return "\n".join(lines)
    
    def _force_check(self) -> str:
        if self.trigger_check is None:
            return "❌ Force check not available"
        
        self.logger.info("Manual release check triggered")
        if self.trigger_check():
            return "🔄 Manual release check started..."
        return "⏳ A release check is already queued"
    
    def _test_notify(self, chat_id: int) -> str:
        if self.publisher is None:
            return "❌ Publisher not available"
        
        message = render(
            repo_full_name=SAMPLE_REPOSITORY,
            tag=SAMPLE_TAG,
            url=SAMPLE_URL,
            body_markup=SAMPLE_BODY,
            published_at=datetime(2024, 2, 6, 17, 55, tzinfo=timezone.utc),
            tz_name=self.timezone_name,
        )
        try:
            self.publisher.send(chat_id, message)
        except DeliveryError as e:
            return f"❌ Failed to send test notification: {html.escape(str(e))}"
        return "✅ Test notification sent. This is what release notifications look like."
    
    def _test_llm(self) -> str:
        if self.advisor is None or not self.advisor.enabled:
            return "❌ LLM advisor is not configured. Check ADVISOR_ENABLED and OPENROUTER_API_KEY."
        
        bullets = [
            "Update Docker to v28.3.2 and Buildx to v0.26.1",
            "Fix if statement structure in update script and variable reference",
            "Add V2 flow for runner deletion",
        ]
        try:
            commentary = self.advisor.advise("actions/runner", "v2.328.0", bullets)
        except AdvisorError as e:
            return f"❌ LLM error: {html.escape(str(e))}"
        
        if not commentary:
            return "⚠️ LLM returned an empty response."
        
        sample = "\n".join(f"▪️ {html.escape(b)}" for b in bullets)
        return (
            "🧪 <b>LLM advisor test</b>\n\n"
            f"📝 <b>Input:</b>\n{sample}\n\n"
            f"🤖 <b>Response:</b>\n{html.escape(commentary)}"
        )

"""
Main entry point for the release monitoring system.
"""

import sys
import signal
import argparse
import threading

from dotenv import load_dotenv

from .core.config import Settings, get_settings
from .core.errors import LedgerError
from .core.logging import setup_logging
from .admin import AdminBot, AdminCommandHandler
from .ingestion import GitHubReleaseClient
from .orchestration import ReleasePipeline, Scheduler
from .publishing import TelegramPublisher
from .storage import ReleaseLedger
from .summarization import build_advisor


def build_pipeline(settings: Settings, ledger: ReleaseLedger, cancel_event: threading.Event, logger):
    """Wire the pipeline components from configuration."""
    source = GitHubReleaseClient(
        token=settings.github_token,
        base_url=settings.github_api_url,
        cancel_event=cancel_event,
        logger=logger.bind(component="github")
    )
    publisher = TelegramPublisher(
        bot_token=settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
        cancel_event=cancel_event,
        logger=logger.bind(component="telegram")
    )
    advisor = build_advisor(settings, logger=logger.bind(component="advisor"))
    
    return ReleasePipeline.from_settings(
        settings,
        ledger=ledger,
        source=source,
        publisher=publisher,
        advisor=advisor,
        cancel_event=cancel_event,
        logger=logger.bind(component="pipeline")
    )


def seed_ledger(settings: Settings, ledger: ReleaseLedger, logger) -> None:
    """Register the default chat and initial repositories from configuration."""
    if settings.default_chat_id:
        try:
            ledger.add_destination(settings.default_chat_id, "Default Chat")
        except LedgerError as e:
            logger.warning("Failed to add default chat", chat_id=settings.default_chat_id, error=str(e))
    
    repositories = settings.initial_repositories
    if not repositories:
        logger.debug("No initial repositories configured in environment")
        return
    
    logger.info("Initializing repositories from environment configuration", count=len(repositories))
    for owner, name, track_prereleases in repositories:
        try:
            ledger.add_repository(owner, name, track_prereleases)
        except LedgerError as e:
            logger.warning("Failed to add repository from environment",
                           repo=f"{owner}/{name}", error=str(e))


def run_service(settings: Settings, ledger: ReleaseLedger, logger) -> int:
    """Run the scheduler and the admin listener until a shutdown signal."""
    cancel_event = threading.Event()
    
    def handle_signal(signum, frame):
        logger.info("Received shutdown signal", signal=signum)
        cancel_event.set()
    
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    
    seed_ledger(settings, ledger, logger)
    
    pipeline = build_pipeline(settings, ledger, cancel_event, logger)
    scheduler = Scheduler(
        job=pipeline.run_cycle,
        interval_seconds=settings.poll_interval_seconds,
        cancel_event=cancel_event,
        logger=logger.bind(component="scheduler")
    )
    scheduler.start()
    
    allowed_users = settings.allowed_user_ids
    if allowed_users:
        handler = AdminCommandHandler(
            ledger,
            trigger_check=scheduler.trigger,
            advisor=pipeline.advisor,
            publisher=pipeline.publisher,
            timezone_name=settings.timezone,
            logger=logger.bind(component="admin")
        )
        AdminBot(
            pipeline.publisher,
            handler,
            allowed_users,
            cancel_event=cancel_event,
            logger=logger.bind(component="admin")
        ).start()
    
    logger.info("Release monitor started",
                interval_minutes=settings.poll_interval_minutes,
                advisor_enabled=pipeline.advisor.enabled,
                commands_enabled=bool(allowed_users))
    
    # Wake periodically so signal handlers run promptly
    while not cancel_event.wait(1.0):
        pass
    
    logger.info("Shutting down...")
    scheduler.stop()
    pipeline.close()
    logger.info("Release monitor stopped")
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="GitHub release monitor with Telegram notifications"
    )
    
    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    
    subparsers.add_parser('run', help='Run the scheduler and admin bot')
    subparsers.add_parser('once', help='Run a single release check cycle')
    subparsers.add_parser('health', help='Check system health')
    
    add_repo_parser = subparsers.add_parser('add-repo', help='Track a repository')
    add_repo_parser.add_argument('repository', help='Repository as owner/name')
    add_repo_parser.add_argument('--pre', action='store_true', help='Include prereleases')
    
    remove_repo_parser = subparsers.add_parser('remove-repo', help='Stop tracking a repository')
    remove_repo_parser.add_argument('repository', help='Repository as owner/name')
    
    subparsers.add_parser('list-repos', help='List tracked repositories')
    
    add_chat_parser = subparsers.add_parser('add-chat', help='Register a chat for notifications')
    add_chat_parser.add_argument('chat_id', type=int, help='Telegram chat id')
    add_chat_parser.add_argument('--label', default='', help='Human readable label')
    
    remove_chat_parser = subparsers.add_parser('remove-chat', help='Unregister a chat')
    remove_chat_parser.add_argument('chat_id', type=int, help='Telegram chat id')
    
    subparsers.add_parser('list-chats', help='List registered chats')
    subparsers.add_parser('list-settings', help='List stored auxiliary state')
    
    args = parser.parse_args()
    
    if args.command is None:
        parser.print_help()
        sys.exit(1)
    
    load_dotenv()
    settings = get_settings()
    logger = setup_logging(settings.log_level, settings.log_format)
    
    try:
        ledger = ReleaseLedger(settings.db_path)
    except LedgerError as e:
        logger.error("Failed to open database", error=str(e))
        sys.exit(1)
    
    if args.command in ('run', 'once', 'health') and not settings.telegram_bot_token:
        logger.error("TELEGRAM_BOT_TOKEN is not set")
        sys.exit(1)
    
    if args.command == 'run':
        sys.exit(run_service(settings, ledger, logger))
    
    elif args.command == 'once':
        seed_ledger(settings, ledger, logger)
        pipeline = build_pipeline(settings, ledger, threading.Event(), logger)
        report = pipeline.run_cycle()
        pipeline.close()
        
        print(f"\n=== Release Check ({report.status}) ===")
        print(f"• Repositories checked: {report.repositories_checked}")
        print(f"• Unchanged: {report.repositories_unchanged}")
        print(f"• Failed: {report.repositories_failed}")
        print(f"• Releases delivered: {report.releases_delivered}")
        print(f"• Releases skipped: {report.releases_skipped}")
        print(f"• Chats pruned: {report.destinations_pruned}")
        sys.exit(0 if report.status == "completed" else 1)
    
    elif args.command == 'health':
        pipeline = build_pipeline(settings, ledger, threading.Event(), logger)
        health_status = pipeline.health_check()
        pipeline.close()
        
        print("\n=== System Health Check ===")
        for component, status in health_status.items():
            status_icon = "✅" if status else "❌"
            print(f"{status_icon} {component.replace('_', ' ').title()}: {'OK' if status else 'FAILED'}")
        
        all_healthy = all(health_status.values())
        print(f"\nOverall Status: {'✅ HEALTHY' if all_healthy else '❌ ISSUES DETECTED'}")
        sys.exit(0 if all_healthy else 1)
    
    elif args.command in ('add-repo', 'remove-repo'):
        parts = args.repository.split('/')
        if len(parts) != 2 or not all(parts):
            logger.error("Invalid repository format. Use owner/name")
            sys.exit(1)
        
        if args.command == 'add-repo':
            ledger.add_repository(parts[0], parts[1], args.pre)
            print(f"Added {args.repository}{' (including prereleases)' if args.pre else ''}")
        elif ledger.remove_repository(parts[0], parts[1]):
            print(f"Removed {args.repository}")
        else:
            print(f"{args.repository} is not tracked")
    
    elif args.command == 'list-repos':
        for repository in ledger.list_repositories():
            suffix = " (with prereleases)" if repository.track_prereleases else ""
            print(f"• {repository.full_name}{suffix}")
    
    elif args.command == 'add-chat':
        ledger.add_destination(args.chat_id, args.label)
        print(f"Added chat {args.chat_id}")
    
    elif args.command == 'remove-chat':
        if ledger.remove_destination(args.chat_id):
            print(f"Removed chat {args.chat_id}")
        else:
            print(f"Chat {args.chat_id} is not registered")
    
    elif args.command == 'list-chats':
        for destination in ledger.list_destinations():
            print(f"• {destination.id} {destination.label}")
    
    elif args.command == 'list-settings':
        for setting in ledger.list_settings():
            print(f"• {setting.key} = {setting.value}")


if __name__ == "__main__":
    main()

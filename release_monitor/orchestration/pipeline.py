"""
Release ingestion pipeline.

One cycle walks every tracked repository, fetches its recent releases with
ETag revalidation and broadcasts each new release to every registered chat.
"""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import structlog

from ..core.errors import (
    AdvisorError, DeliveryError, FetchError, LedgerError, PermanentDeliveryError
)
from ..core.models import (
    CycleReport, DeliveryOutcome, Release, ReleaseOutcome, ReleaseStatus, TrackedRepository
)
from ..ingestion.github_client import GitHubReleaseClient
from ..publishing.composer import render
from ..publishing.telegram_publisher import TelegramPublisher
from ..storage.database import ReleaseLedger
from ..summarization.advisor import NullAdvisor
from ..summarization.changelog import extract_bullets

logger = structlog.get_logger(__name__)


class CycleCancelled(Exception):
    """Raised internally when the cancellation event stops a cycle."""


class ReleasePipeline:
    """Main pipeline orchestrator for release notifications."""
    
    def __init__(
        self,
        ledger: ReleaseLedger,
        source: GitHubReleaseClient,
        publisher: TelegramPublisher,
        advisor=None,
        timezone_name: str = "UTC",
        max_bullets: int = 8,
        max_changelog_chars: int = 2500,
        max_release_age_days: int = 7,
        advisor_timeout: float = 15.0,
        batch_size: int = 20,
        batch_pause: float = 1.0,
        repository_pause: float = 0.2,
        destination_pause: float = 0.1,
        cancel_event: Optional[threading.Event] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger=None,
    ):
        self.ledger = ledger
        self.source = source
        self.publisher = publisher
        self.advisor = advisor or NullAdvisor()
        
        self.timezone_name = timezone_name
        self.max_bullets = max_bullets
        self.max_changelog_chars = max_changelog_chars
        self.max_release_age_days = max_release_age_days
        self.advisor_timeout = advisor_timeout
        
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.repository_pause = repository_pause
        self.destination_pause = destination_pause
        
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or structlog.get_logger(__name__)
        
        self._cycle_lock = threading.Lock()
        self._advisor_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="advisor")
    
    @classmethod
    def from_settings(cls, settings, ledger, source, publisher, advisor, cancel_event=None, logger=None):
        """Build a pipeline with the tunables taken from ``Settings``."""
        return cls(
            ledger=ledger,
            source=source,
            publisher=publisher,
            advisor=advisor,
            timezone_name=settings.timezone,
            max_bullets=settings.max_bullets,
            max_changelog_chars=settings.max_changelog_chars,
            max_release_age_days=settings.max_release_age_days,
            advisor_timeout=settings.advisor_timeout_seconds,
            cancel_event=cancel_event,
            logger=logger,
        )
    
    def run_cycle(self) -> CycleReport:
        """
        Execute one ingestion cycle over every tracked repository.
        
        Never raises: unexpected failures are logged and reported through
        the returned CycleReport.
        """
        report = CycleReport(run_id=str(uuid.uuid4()), start_time=self.clock())
        log = self.logger.bind(run_id=report.run_id)
        
        with self._cycle_lock:
            try:
                log.info("Starting release check cycle")
                self._run(report, log)
                report.status = "completed"
            except CycleCancelled:
                report.status = "cancelled"
                log.info("Release check cycle cancelled")
            except Exception as e:
                report.status = "failed"
                report.error_message = str(e)
                log.exception("Release check cycle failed", error=str(e))
            finally:
                report.end_time = self.clock()
        
        log.info("Release check cycle finished",
                 status=report.status,
                 repositories_checked=report.repositories_checked,
                 repositories_unchanged=report.repositories_unchanged,
                 repositories_failed=report.repositories_failed,
                 releases_delivered=report.releases_delivered,
                 releases_skipped=report.releases_skipped,
                 destinations_pruned=report.destinations_pruned)
        return report
    
    def _run(self, report: CycleReport, log) -> None:
        try:
            repositories = self.ledger.list_repositories()
        except LedgerError as e:
            log.error("Failed to load repositories", error=str(e))
            raise
        
        if not repositories:
            log.info("No repositories to check")
            return
        
        log.info("Checking releases for repositories", count=len(repositories))
        
        for start in range(0, len(repositories), self.batch_size):
            batch = repositories[start:start + self.batch_size]
            
            for index, repository in enumerate(batch):
                if index > 0:
                    self._pause(self.repository_pause)
                self._check_cancelled()
                try:
                    self.process_repository(repository, report, log)
                except CycleCancelled:
                    raise
                except Exception as e:
                    report.repositories_failed += 1
                    log.exception("Unexpected error processing repository",
                                  repo=repository.full_name,
                                  error=str(e))
            
            if start + self.batch_size < len(repositories):
                self._pause(self.batch_pause)
    
    def process_repository(self, repository: TrackedRepository, report: CycleReport, log=None) -> None:
        """Fetch, filter and process the releases of one repository."""
        log = (log or self.logger).bind(repo=repository.full_name)
        report.repositories_checked += 1
        
        try:
            etag = self.ledger.get_etag(repository.owner, repository.name)
        except LedgerError as e:
            log.warning("Failed to get ETag", error=str(e))
            etag = ""
        
        try:
            response = self.source.fetch_releases(repository.owner, repository.name, etag)
        except FetchError as e:
            report.repositories_failed += 1
            log.error("Failed to fetch releases", error=str(e))
            return
        
        if response.unchanged:
            report.repositories_unchanged += 1
            log.debug("No new releases (304 Not Modified)")
            return
        
        releases = self.source.filter_and_sort(response.releases, repository.track_prereleases)
        log.debug("Filtered releases", total=len(response.releases), filtered=len(releases))
        
        complete = True
        for release in releases:
            if self.cancel_event.is_set():
                complete = False
                break
            
            outcome = self.process_release(repository, release, log)
            report.outcomes.append(outcome)
            
            if outcome.status == ReleaseStatus.DELIVERED:
                report.releases_delivered += 1
            elif outcome.status in (ReleaseStatus.SKIPPED_OLD, ReleaseStatus.ALREADY_PROCESSED):
                report.releases_skipped += 1
            elif outcome.status == ReleaseStatus.FAILED:
                complete = False
            report.destinations_pruned += sum(1 for d in outcome.deliveries if d.permanent)
        
        # A partially handled list is refetched in full on the next cycle
        if complete and response.etag:
            try:
                self.ledger.put_etag(repository.owner, repository.name, response.etag)
            except LedgerError as e:
                log.warning("Failed to store ETag", error=str(e))
        
        self._check_cancelled()
    
    def process_release(self, repository: TrackedRepository, release: Release, log=None) -> ReleaseOutcome:
        """Deliver one release to every chat unless it was handled before."""
        log = (log or self.logger).bind(release_id=release.id, tag=release.tag_name)
        outcome = ReleaseOutcome(
            repository=repository.full_name,
            release_id=release.id,
            tag_name=release.tag_name,
            status=ReleaseStatus.FAILED
        )
        
        cutoff = self.clock() - timedelta(days=self.max_release_age_days)
        if release.published_at < cutoff:
            log.debug("Skipping old release",
                      published_at=release.published_at.isoformat(),
                      max_age_days=self.max_release_age_days)
            try:
                self.ledger.mark_processed(repository.owner, repository.name, release.id,
                                           release.tag_name, release.published_at)
            except LedgerError as e:
                log.warning("Failed to mark old release as processed", error=str(e))
            outcome.status = ReleaseStatus.SKIPPED_OLD
            return outcome
        
        try:
            if self.ledger.is_processed(repository.owner, repository.name, release.id):
                log.debug("Release already processed, skipping")
                outcome.status = ReleaseStatus.ALREADY_PROCESSED
                return outcome
        except LedgerError as e:
            log.error("Failed to check if release is processed", error=str(e))
            return outcome
        
        log.info("Processing new release")
        
        bullets = extract_bullets(release.body, self.max_bullets, self.max_changelog_chars)
        commentary = self._get_commentary(repository.full_name, release.tag_name, bullets, log)
        
        message = render(
            repo_full_name=repository.full_name,
            tag=release.tag_name,
            url=release.html_url,
            body_markup=release.body,
            published_at=release.published_at,
            commentary=commentary,
            bullets=bullets,
            tz_name=self.timezone_name,
            max_bullets=self.max_bullets,
            max_chars=self.max_changelog_chars,
        )
        
        try:
            destinations = self.ledger.list_destinations()
        except LedgerError as e:
            log.error("Failed to get destinations", error=str(e))
            return outcome
        
        # Nothing below may be interrupted before the marker is written
        if self.cancel_event.is_set():
            return outcome
        
        if not destinations:
            log.warning("No chats configured for notifications")
        
        for index, destination in enumerate(destinations):
            if index > 0:
                self._pause(self.destination_pause)
            outcome.deliveries.append(self._deliver(destination.id, message, log))
        
        if not destinations:
            outcome.status = ReleaseStatus.NO_DESTINATIONS
        elif any(d.success for d in outcome.deliveries):
            outcome.status = ReleaseStatus.DELIVERED
        else:
            outcome.status = ReleaseStatus.UNDELIVERED
        
        try:
            self.ledger.mark_processed(repository.owner, repository.name, release.id,
                                       release.tag_name, release.published_at)
            log.info("Release marked as processed", status=outcome.status.value)
        except LedgerError as e:
            log.error("Failed to mark release as processed", error=str(e))
        
        return outcome
    
    def _deliver(self, chat_id: int, message: str, log) -> DeliveryOutcome:
        chat_log = log.bind(chat_id=chat_id)
        
        try:
            self.publisher.send(chat_id, message)
            chat_log.info("Message sent successfully")
            return DeliveryOutcome(destination_id=chat_id, success=True)
        
        except PermanentDeliveryError as e:
            chat_log.warning("Removing chat due to permanent error", error=str(e))
            try:
                self.ledger.remove_destination(chat_id)
                chat_log.info("Invalid chat removed from database")
            except LedgerError as remove_error:
                chat_log.error("Failed to remove invalid chat", remove_error=str(remove_error))
            return DeliveryOutcome(destination_id=chat_id, success=False,
                                   permanent=True, error_message=str(e))
        
        except DeliveryError as e:
            chat_log.error("Failed to send message", error=str(e))
            return DeliveryOutcome(destination_id=chat_id, success=False, error_message=str(e))
        
        except Exception as e:
            chat_log.exception("Unexpected error sending message", error=str(e))
            return DeliveryOutcome(destination_id=chat_id, success=False, error_message=str(e))
    
    def _get_commentary(self, repo_full_name: str, tag: str, bullets: List[str], log) -> str:
        """Ask the advisor for commentary, bounded by its own timeout."""
        if not self.advisor.enabled:
            return ""
        
        future = self._advisor_executor.submit(self.advisor.advise, repo_full_name, tag, bullets)
        try:
            return future.result(timeout=self.advisor_timeout) or ""
        except FutureTimeoutError:
            future.cancel()
            log.debug("Advisor request timed out, continuing without commentary",
                      timeout=self.advisor_timeout)
        except AdvisorError as e:
            log.warning("Failed to get advisor commentary", error=str(e))
        except Exception as e:
            log.exception("Unexpected advisor failure", error=str(e))
        return ""
    
    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            self.cancel_event.wait(seconds)
    
    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CycleCancelled()
    
    def health_check(self) -> dict:
        """Check health of all pipeline components."""
        try:
            self.ledger.get_stats()
            ledger_ok = True
        except LedgerError:
            ledger_ok = False
        
        health_status = {
            "ledger": ledger_ok,
            "github_api": self.source.health_check(),
            "telegram_bot": self.publisher.health_check(),
            "openrouter_api": self.advisor.health_check(),
        }
        
        # Remove None values
        health_status = {k: v for k, v in health_status.items() if v is not None}
        
        self.logger.info("Pipeline health check",
                         overall_healthy=all(health_status.values()),
                         component_status=health_status)
        return health_status
    
    def close(self) -> None:
        self._advisor_executor.shutdown(wait=False)

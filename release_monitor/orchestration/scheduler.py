"""
Periodic and on-demand execution of the release check job.
"""

import threading
import time
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

IDLE = "idle"
RUNNING = "running"


class Scheduler:
    """
    Runs a job once on start, then on every interval tick and on demand.
    
    Executions happen one at a time on a dedicated worker thread. Ticks and
    manual triggers that arrive while a run is in progress collapse into a
    single pending run; a manual trigger made while one is already pending
    is dropped.
    """
    
    def __init__(
        self,
        job: Callable[[], object],
        interval_seconds: float,
        cancel_event: Optional[threading.Event] = None,
        logger=None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        
        self.job = job
        self.interval = interval_seconds
        self.cancel_event = cancel_event or threading.Event()
        self.logger = logger or structlog.get_logger(__name__)
        
        self.state = IDLE
        self.executions = 0
        self.failures = 0
        
        self._cond = threading.Condition()
        self._pending = False
        self._stopped = False
        self._thread: Optional[threading.Thread] = None
    
    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("scheduler already started")
        
        self.logger.info("Starting scheduler", interval_seconds=self.interval)
        self._thread = threading.Thread(target=self._run, name="release-scheduler", daemon=True)
        self._thread.start()
    
    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop future ticks; an execution already running is left to finish."""
        self.logger.info("Stopping scheduler")
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
    
    def trigger(self) -> bool:
        """Request an extra run. Returns False if one is already pending."""
        with self._cond:
            if self._stopped:
                self.logger.warning("Manual trigger ignored - scheduler stopped")
                return False
            if self._pending:
                self.logger.warning("Manual trigger ignored - already pending")
                return False
            self._pending = True
            self._cond.notify_all()
        
        self.logger.info("Manual trigger scheduled")
        return True
    
    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
    
    def _run(self) -> None:
        self.logger.info("Running initial job execution")
        self._execute("startup")
        next_tick = time.monotonic() + self.interval
        
        while True:
            with self._cond:
                while not self._pending and not self._should_exit():
                    remaining = next_tick - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                
                if self._should_exit():
                    break
                
                reason = "manual" if self._pending else "tick"
                self._pending = False
            
            now = time.monotonic()
            while next_tick <= now:
                next_tick += self.interval
            
            self._execute(reason)
        
        self.logger.info("Scheduler stopped")
    
    def _should_exit(self) -> bool:
        return self._stopped or self.cancel_event.is_set()
    
    def _execute(self, reason: str) -> None:
        """Run the job, containing any failure to this execution."""
        start = time.monotonic()
        self.state = RUNNING
        self.logger.debug("Job execution started", reason=reason)
        
        try:
            self.job()
        except Exception as e:
            self.failures += 1
            self.logger.exception("Job execution failed",
                                  reason=reason,
                                  error=str(e),
                                  duration_seconds=round(time.monotonic() - start, 3))
        else:
            self.logger.debug("Job execution completed",
                              reason=reason,
                              duration_seconds=round(time.monotonic() - start, 3))
        finally:
            self.executions += 1
            self.state = IDLE

"""
ReminderTrigger -- In-process polling trigger.

Contract:
    ``tick()`` runs one processing pass: due reminders for every registered
    processor, then the scheduled-email queue for every registered email
    service.  ``start()`` / ``stop()`` run ticks on a fixed interval in a
    daemon thread.

Invariants enforced:
    - All timestamps from the injected Clock.
    - A tick never overlaps another tick; an overlapping call returns None.
    - A failing processor or email service is logged and does not stop
      the others in the same tick.
    - Graceful shutdown: the stop signal is checked between units of work.

Non-goals:
    - NOT a distributed scheduler; run one trigger per deployment.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Sequence
from uuid import uuid4

from dunning_batch.services.email_scheduler import ScheduledEmailService
from dunning_kernel.domain.clock import Clock, SystemClock
from dunning_kernel.logging_config import LogContext, get_logger
from dunning_modules.reminders.processor import ReminderProcessor

logger = get_logger("batch.trigger")


@dataclass
class TickSummary:
    """Totals for one tick."""

    reminders_sent: int = 0
    reminders_failed: int = 0
    reminders_skipped: int = 0
    reminders_deferred: int = 0
    emails_processed: int = 0
    emails_failed: int = 0
    errors: list[str] = field(default_factory=list)


class ReminderTrigger:
    """Polls reminder processors and email queues on an interval."""

    def __init__(
        self,
        processors: Sequence[ReminderProcessor],
        email_services: Sequence[ScheduledEmailService] = (),
        clock: Clock | None = None,
        tick_interval_seconds: float = 60,
    ):
        if tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        self._processors = tuple(processors)
        self._email_services = tuple(email_services)
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickSummary | None:
        """Run one pass.  Returns None if a tick is already in progress."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("trigger_tick_skipped_overlap")
            return None
        try:
            with LogContext.bind(trace_id=uuid4().hex):
                return self._run_once()
        finally:
            self._tick_lock.release()

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="reminder-trigger",
            daemon=True,
        )
        self._thread.start()
        logger.info("trigger_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("trigger_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("trigger_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _run_once(self) -> TickSummary:
        now = self._clock.now()
        summary = TickSummary()

        for processor in self._processors:
            if self._stop_event.is_set():
                break
            try:
                result = processor.process_due_reminders(now)
            except Exception as exc:
                logger.exception("trigger_reminder_run_failed")
                summary.errors.append(str(exc))
                continue
            summary.reminders_sent += result.sent
            summary.reminders_failed += result.failed
            summary.reminders_skipped += result.skipped
            summary.reminders_deferred += result.deferred

        for service in self._email_services:
            if self._stop_event.is_set():
                break
            try:
                queue_result = service.process_queue()
            except Exception as exc:
                logger.exception("trigger_email_queue_failed")
                summary.errors.append(str(exc))
                continue
            summary.emails_processed += queue_result.processed
            summary.emails_failed += queue_result.failed

        logger.info(
            "trigger_tick_completed",
            extra={
                "reminders_sent": summary.reminders_sent,
                "reminders_failed": summary.reminders_failed,
                "reminders_skipped": summary.reminders_skipped,
                "emails_processed": summary.emails_processed,
                "error_count": len(summary.errors),
            },
        )
        return summary

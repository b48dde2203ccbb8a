"""
Reminder send queue.

Contract:
    A priority-ordered holding area between "a reminder became due" and "it
    was picked up for sending".  It mirrors ``PaymentReminder.status ==
    scheduled`` in the record store: ``sync`` loads it once from a fetch,
    then ``on_change`` (a record store subscription callback) admits newly
    scheduled reminders and drops the ones that left ``scheduled``.
    Reminders that are not scheduled are never admitted.

    The mirror only sees writes made through the store it is subscribed
    to; ``sync`` again after writes made elsewhere.

Ordering:
    Earliest ``scheduled_date`` first; on the same date the more severe
    level goes first; then first-in, first-out.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from datetime import date
from typing import Iterable

from dunning_kernel.store.base import RecordChange
from dunning_modules.reminders.models import PaymentReminder, ReminderStatus

_REMOVED = object()


class ReminderQueue:
    """Thread-safe priority queue of scheduled reminders, keyed by id."""

    def __init__(self) -> None:
        self._heap: list[list] = []
        self._entries: dict[str, list] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, reminder_id: object) -> bool:
        with self._lock:
            return reminder_id in self._entries

    def push(self, reminder: PaymentReminder) -> bool:
        """Admit or refresh a reminder.  Returns False if it is not scheduled."""
        if reminder.status is not ReminderStatus.SCHEDULED:
            return False
        with self._lock:
            self._push_locked(reminder)
        return True

    def sync(self, reminders: Iterable[PaymentReminder]) -> int:
        """Replace the contents with ``reminders``; returns the new size."""
        with self._lock:
            self._heap.clear()
            self._entries.clear()
            for reminder in reminders:
                if reminder.status is ReminderStatus.SCHEDULED:
                    self._push_locked(reminder)
            return len(self._entries)

    def pop(self, as_of: date | None = None) -> PaymentReminder | None:
        """
        Remove and return the head.

        With ``as_of``, only a head dated on or before it is returned; a
        later head stays queued and the result is None.
        """
        with self._lock:
            while self._heap and self._heap[0][-1] is _REMOVED:
                heapq.heappop(self._heap)
            if not self._heap:
                return None
            if as_of is not None and self._heap[0][0] > as_of:
                return None
            reminder = heapq.heappop(self._heap)[-1]
            del self._entries[reminder.id]
            return reminder

    def discard(self, reminder_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(reminder_id, None)
            if entry is None:
                return False
            entry[-1] = _REMOVED
            return True

    def on_change(self, change: RecordChange) -> None:
        """Apply one record store change to the mirror."""
        reminder = PaymentReminder.from_document(change.document)
        if reminder.status is ReminderStatus.SCHEDULED:
            self.push(reminder)
        else:
            self.discard(reminder.id)

    def _push_locked(self, reminder: PaymentReminder) -> None:
        previous = self._entries.pop(reminder.id, None)
        if previous is not None:
            previous[-1] = _REMOVED
        entry = [
            reminder.scheduled_date,
            -reminder.level.severity,
            next(self._counter),
            reminder,
        ]
        self._entries[reminder.id] = entry
        heapq.heappush(self._heap, entry)

"""
Mailer -- outbound email seam.

``Mailer.send(template_type, recipient, variables)`` delivers one templated
message and returns its message id, raising on transport failure.  The
``OutboxMailer`` implementation writes each message into the ``mailOutbox``
collection, where a delivery worker (outside this package) picks it up.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from dunning_kernel.domain.clock import Clock, SystemClock
from dunning_kernel.exceptions import MailTransportError, RecordStoreError
from dunning_kernel.logging_config import get_logger
from dunning_kernel.store.base import RecordStore

logger = get_logger("modules.reminders.mailer")

MAIL_OUTBOX = "mailOutbox"


@dataclass(frozen=True)
class MailReceipt:
    """Acknowledgement from the mailer."""

    message_id: str


@runtime_checkable
class Mailer(Protocol):
    """Templated email transport."""

    def send(
        self,
        template_type: str,
        recipient: str,
        variables: Mapping[str, Any],
    ) -> MailReceipt: ...


class OutboxMailer:
    """Mailer that queues messages as documents in the outbox collection."""

    def __init__(self, store: RecordStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def send(
        self,
        template_type: str,
        recipient: str,
        variables: Mapping[str, Any],
    ) -> MailReceipt:
        if not recipient or "@" not in recipient:
            raise MailTransportError(template_type, recipient or "<none>", "invalid recipient address")

        document = {
            "template": {"name": template_type, "data": dict(variables)},
            "to": [recipient],
            "cc": list(variables.get("cc_emails") or ()),
            "subject": variables.get("subject", ""),
            "status": "queued",
            "queued_at": self._clock.now().isoformat(),
        }
        try:
            message_id = self._store.add(MAIL_OUTBOX, document)
        except RecordStoreError as exc:
            raise MailTransportError(template_type, recipient, str(exc)) from exc

        logger.info(
            "mail_queued",
            extra={"template_type": template_type, "message_id": message_id},
        )
        return MailReceipt(message_id=message_id)

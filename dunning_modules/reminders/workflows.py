"""
Payment Reminder Workflows.

State machine for a reminder's status.  A reminder starts ``scheduled`` and
moves once to a terminal state; nothing leaves a terminal state.
"""

from dataclasses import dataclass

from dunning_kernel.exceptions import InvalidReminderTransitionError
from dunning_kernel.logging_config import get_logger
from dunning_modules.reminders.models import ReminderStatus

logger = get_logger("modules.reminders.workflows")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def allows(self, from_state: str, to_state: str) -> bool:
        return any(
            t.from_state == from_state and t.to_state == to_state
            for t in self.transitions
        )


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

INVOICE_SETTLED = Guard(
    name="invoice_settled",
    description="Invoice is missing, paid or cancelled",
)

PARTIAL_PAYMENT_RECEIVED = Guard(
    name="partial_payment_received",
    description="Invoice has a partial payment and the policy pauses on it",
)

MAILER_ACCEPTED = Guard(
    name="mailer_accepted",
    description="Mailer returned a message id",
)


# -----------------------------------------------------------------------------
# Reminder Workflow
# -----------------------------------------------------------------------------

REMINDER_WORKFLOW = Workflow(
    name="payment_reminder",
    description="Payment reminder lifecycle",
    initial_state=ReminderStatus.SCHEDULED.value,
    states=tuple(status.value for status in ReminderStatus),
    transitions=(
        Transition("scheduled", "sent", action="send", guard=MAILER_ACCEPTED),
        Transition("scheduled", "cancelled", action="cancel", guard=INVOICE_SETTLED),
        Transition("scheduled", "cancelled", action="pause", guard=PARTIAL_PAYMENT_RECEIVED),
        Transition("scheduled", "failed", action="fail"),
    ),
    terminal_states=("sent", "failed", "cancelled"),
)

logger.info(
    "reminder_workflow_registered",
    extra={
        "workflow_name": REMINDER_WORKFLOW.name,
        "state_count": len(REMINDER_WORKFLOW.states),
        "transition_count": len(REMINDER_WORKFLOW.transitions),
        "initial_state": REMINDER_WORKFLOW.initial_state,
    },
)


def check_transition(
    reminder_id: str,
    from_status: ReminderStatus,
    to_status: ReminderStatus,
) -> None:
    """Raise InvalidReminderTransitionError unless the move is in the workflow."""
    if not REMINDER_WORKFLOW.allows(from_status.value, to_status.value):
        raise InvalidReminderTransitionError(reminder_id, from_status.value, to_status.value)

"""
Typed Exception Hierarchy for the dunning packages.

Every error has a typed class, a machine-readable ``code`` class attribute,
and carries its context as attributes rather than only in the message.

    DunningError (base)
    |
    +-- RecordError
    |   +-- RecordNotFoundError
    |   +-- RecordStoreError
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- RemindersAlreadyScheduledError
    |
    +-- ReminderError
    |   +-- InvalidReminderTransitionError
    |   +-- ReminderBatchFetchError
    |
    +-- DeliveryError
    |   +-- MailTransportError
    |   +-- ScheduledEmailNotFoundError
    |
    +-- CurrencyError
        +-- InvalidCurrencyError
        +-- ExchangeRateNotFoundError

Category   | Code                         | When Raised
-----------|------------------------------|------------------------------------
Record     | RECORD_NOT_FOUND             | update() on a missing document
           | RECORD_STORE_ERROR           | Backend failure (connection, commit)
Invoice    | INVOICE_NOT_FOUND            | Scheduling for an unknown invoice
           | REMINDERS_ALREADY_SCHEDULED  | Second schedule for the same invoice
Reminder   | INVALID_REMINDER_TRANSITION  | Status moving out of a terminal state
           | REMINDER_BATCH_FETCH_FAILED  | Due-reminder query failed
Delivery   | MAIL_TRANSPORT_FAILED        | Mailer raised while sending
           | SCHEDULED_EMAIL_NOT_FOUND    | Unknown scheduled email id
Currency   | INVALID_CURRENCY             | Unsupported currency code
           | EXCHANGE_RATE_NOT_FOUND      | No static rate for the pair

Only ``ReminderBatchFetchError`` escapes ``ReminderProcessor.process_due_reminders``;
per-reminder failures are recorded on the reminder and counted.
"""


class DunningError(Exception):
    """Base exception for all dunning errors."""

    code: str = "DUNNING_ERROR"


# Record store exceptions


class RecordError(DunningError):
    """Base exception for record store errors."""

    code: str = "RECORD_ERROR"


class RecordNotFoundError(RecordError):
    """Document does not exist in the collection."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"Record not found: {collection}/{record_id}")


class RecordStoreError(RecordError):
    """The storage backend failed to complete an operation."""

    code: str = "RECORD_STORE_ERROR"

    def __init__(self, operation: str, collection: str, reason: str):
        self.operation = operation
        self.collection = collection
        self.reason = reason
        super().__init__(f"Record store {operation} on '{collection}' failed: {reason}")


# Invoice exceptions


class InvoiceError(DunningError):
    """Base exception for invoice-related errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice does not exist or belongs to another user."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class RemindersAlreadyScheduledError(InvoiceError):
    """Reminder rows already exist for the invoice."""

    code: str = "REMINDERS_ALREADY_SCHEDULED"

    def __init__(self, invoice_id: str, existing_count: int):
        self.invoice_id = invoice_id
        self.existing_count = existing_count
        super().__init__(
            f"Invoice {invoice_id} already has {existing_count} reminder(s) scheduled"
        )


# Reminder exceptions


class ReminderError(DunningError):
    """Base exception for reminder processing errors."""

    code: str = "REMINDER_ERROR"


class InvalidReminderTransitionError(ReminderError):
    """Reminder status change is not allowed by the workflow."""

    code: str = "INVALID_REMINDER_TRANSITION"

    def __init__(self, reminder_id: str, from_status: str, to_status: str):
        self.reminder_id = reminder_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Reminder {reminder_id} cannot move from '{from_status}' to '{to_status}'"
        )


class ReminderBatchFetchError(ReminderError):
    """Due reminders could not be fetched; the whole run is aborted."""

    code: str = "REMINDER_BATCH_FETCH_FAILED"

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Failed to fetch due reminders for user {user_id}: {reason}")


# Delivery exceptions


class DeliveryError(DunningError):
    """Base exception for email delivery errors."""

    code: str = "DELIVERY_ERROR"


class MailTransportError(DeliveryError):
    """The mailer failed to send a message."""

    code: str = "MAIL_TRANSPORT_FAILED"

    def __init__(self, template_type: str, recipient: str, reason: str):
        self.template_type = template_type
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Failed to send {template_type} to {recipient}: {reason}")


class ScheduledEmailNotFoundError(DeliveryError):
    """Scheduled email id is unknown."""

    code: str = "SCHEDULED_EMAIL_NOT_FOUND"

    def __init__(self, scheduled_email_id: str):
        self.scheduled_email_id = scheduled_email_id
        super().__init__(f"Scheduled email not found: {scheduled_email_id}")


# Currency exceptions


class CurrencyError(DunningError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not supported."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency code: '{currency}'")


class ExchangeRateNotFoundError(CurrencyError):
    """No exchange rate is configured for the currency pair."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(f"No exchange rate found for {from_currency}/{to_currency}")

"""
dunning_batch -- Background processing for reminders and scheduled email.

Provides the scheduled-email service (priority ordering, retry with
backoff) and an in-process polling trigger that runs reminder processing
and the email queue on an interval.

Architecture:
    dunning_batch/ is a top-level package.  Nothing in kernel/, engines/
    or modules/ imports from dunning_batch.
"""

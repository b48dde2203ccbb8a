"""Scheduled email service and the polling trigger."""

"""Pure types and timing rules for scheduled email."""

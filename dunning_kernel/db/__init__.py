"""SQLAlchemy plumbing for the SQL-backed record store."""

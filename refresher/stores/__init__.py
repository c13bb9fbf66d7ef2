"""Default Redis and MongoDB adapters."""

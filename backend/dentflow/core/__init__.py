"""Core infrastructure: configuration, database, tenancy, logging, errors."""

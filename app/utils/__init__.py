"""Shared helpers: HTTP responses, time and locking."""

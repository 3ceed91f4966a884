"""Append-only activity log and the event bus it publishes to."""

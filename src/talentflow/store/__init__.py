"""Persistence for pipeline entities."""

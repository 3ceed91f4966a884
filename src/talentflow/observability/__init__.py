"""Logging, tracing and metrics helpers."""

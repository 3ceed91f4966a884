"""Candidate pipeline, SLA tracking and workflow automation core."""

__version__ = "0.1.0"

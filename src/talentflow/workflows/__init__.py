"""Workflow rule engine: trigger matching, action delivery and time-based scans."""

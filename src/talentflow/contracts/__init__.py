"""Typed contracts shared by the pipeline, activity log and workflow engine."""

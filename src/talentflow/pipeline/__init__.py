"""Pipeline state machines, stage graph and SLA tracking."""

"""Demo scenarios and the long-running worker entrypoint."""

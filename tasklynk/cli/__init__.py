"""Command-line interface for TaskLynk."""

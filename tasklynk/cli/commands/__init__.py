"""CLI command handlers. Each ``cmd_*`` function returns a process exit code."""

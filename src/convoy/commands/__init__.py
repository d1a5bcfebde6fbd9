"""convoy CLI commands - subcommand implementations."""

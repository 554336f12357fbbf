"""Core application configuration, security and error types."""

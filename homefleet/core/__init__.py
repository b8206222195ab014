"""Core engine: logging, runtime config, retries, certificate reconciliation."""

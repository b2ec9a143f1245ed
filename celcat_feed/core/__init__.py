"""Core infrastructure: configuration, logging, errors, HTTP client, async helpers."""

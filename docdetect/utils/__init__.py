"""Ambient helpers: logging, configuration, secrets, text sanitization."""

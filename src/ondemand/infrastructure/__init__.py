"""Ambient infrastructure: structured logging and configuration.

Modules:
    logging: Structured logger with JSON, logfmt and console output.
    config: Layered settings loading and validation.
"""

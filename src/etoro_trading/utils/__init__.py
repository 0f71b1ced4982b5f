"""
Shared utilities: logging, retry, events.
"""

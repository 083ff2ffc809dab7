"""
Common utilities for lob-board.

Modules:
- config: environment-driven Settings
- log: logging setup for Lambda and local runs
"""

__all__ = [
    "config",
    "log",
]

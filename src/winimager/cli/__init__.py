"""
WinImager CLI Module.

Provides command-line interface for WinImager operations.
"""

from winimager.cli.main import cli, main

__all__ = ["main", "cli"]

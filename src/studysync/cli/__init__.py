"""
CLI Module - Command-line interface for StudySync.
==================================================

Provides CLI commands for:
- Syncing a tenant's courses from the LMS
- Inspecting, acknowledging and cancelling a sync
- Extracting text from a single document
- Crawling linked pages
- Resolving lesson context for a topic

Usage:
    studysync --help
    studysync sync --tenant alice
    studysync status --tenant alice
    studysync context 42 "binary search trees"

Components:
- main: Typer CLI application
"""

from studysync.cli.main import app, cli

__all__ = ["app", "cli"]

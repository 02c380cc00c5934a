#!/usr/bin/env python3
"""
Main entry point for the task agent CLI.

This delegates to the UI layer in taskagent.ui.cli to keep the
console script mapping stable.
"""

from taskagent.ui.cli import run as task_agent


if __name__ == "__main__":
    task_agent()

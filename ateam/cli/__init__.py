"""
A(i)-Team CLI components.

- typer_commands.py: CLI entry points (items, move, claim, mission, watch, ...)
- render.py: Rich tables and panels
"""

from ateam.cli.typer_commands import app, main

__all__ = ["app", "main"]

"""auroradeps CLI — Typer-based command-line interface.

Provides the ``auroradeps`` command with subcommands for switching the
project mode, adding and removing dependencies, verifying the project and
querying the remote.

All output uses Rich for formatted terminal display.
"""

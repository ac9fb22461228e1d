"""didslot CLI: Typer-based command-line interface.

Provides the ``didslot`` command with subcommands for managing the local
identity, deploying the storage application, estimating, uploading and
inspecting documents.

All output uses Rich for formatted terminal display.
"""

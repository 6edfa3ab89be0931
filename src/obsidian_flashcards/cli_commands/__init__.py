"""CLI command modules for obsidian-flashcards.

- shared.py: config/logger loading, console, client and store factories
- sync_commands.py: sync, sync-tag, ping and status commands
"""

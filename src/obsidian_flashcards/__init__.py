"""Sync flashcards written in Obsidian notes to Anki via AnkiConnect."""

__version__ = "0.1.0"

"""Obsidian note parsing, card identity and vault access."""

from .identity import IdentityResolver
from .parser import CardParser, deck_for, parse
from .vault import VaultStore

__all__ = [
    "CardParser",
    "IdentityResolver",
    "VaultStore",
    "deck_for",
    "parse",
]

"""Test fixtures package."""

from .documents import make_document
from .fake_anki_client import FakeAnkiClient

__all__ = ["FakeAnkiClient", "make_document"]

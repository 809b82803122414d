"""Persistence gateway and its JSON-file implementation."""

from speaker_extractor.storage.base import PersistenceGateway
from speaker_extractor.storage.json_store import JsonStore

__all__ = ["PersistenceGateway", "JsonStore"]

# storage/__init__.py
from rsvplib.storage.repository import Repository
from rsvplib.storage.kv import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from rsvplib.storage.models import BookMeta, Chapter, GlobalSettings, ReadingState, SourceType

__all__ = [
    "Repository",
    "KeyValueStore", "MemoryKeyValueStore", "SqliteKeyValueStore",
    "BookMeta", "Chapter", "GlobalSettings", "ReadingState", "SourceType",
]

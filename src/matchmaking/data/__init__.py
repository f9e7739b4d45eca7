"""
Data access components of the matchmaking engine.

This submodule contains the store interfaces and their Valkey-backed implementations.
"""

from matchmaking.data.interfaces import ProfileStore, RelationStore, TextGenerator, VectorSearch
from matchmaking.data.profiles import ValkeyProfileStore
from matchmaking.data.relations import ValkeyRelationStore
from matchmaking.data.vectors import ValkeyVectorSearch

__all__ = [
    "ProfileStore",
    "RelationStore",
    "TextGenerator",
    "VectorSearch",
    "ValkeyProfileStore",
    "ValkeyRelationStore",
    "ValkeyVectorSearch",
]

"""Storage collaborators for finalized messages."""

from .persistence import InMemoryMessageStore, MessageStore, PersistedMessage

__all__ = ["InMemoryMessageStore", "MessageStore", "PersistedMessage"]

"""Storage modules for MovieBot."""
from storage.memory import ConversationMemory
from storage.state_store import InMemoryStateStore, UserStateStore

__all__ = ['ConversationMemory', 'InMemoryStateStore', 'UserStateStore']

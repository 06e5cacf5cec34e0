"""Persistence contract and helpers."""

from chorus.storage.base import PersistenceAdapter
from chorus.storage.batch_writer import BatchWriter
from chorus.storage.in_progress import InProgressSlot, InProgressSnapshot
from chorus.storage.memory import InMemoryPersistence

__all__ = ["BatchWriter", "InMemoryPersistence", "InProgressSlot", "InProgressSnapshot", "PersistenceAdapter"]

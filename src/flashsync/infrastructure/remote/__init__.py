# Infrastructure Remote Store Adapters Package
from .http_store import HttpRemoteStore
from .memory_store import InMemoryRemoteStore

__all__ = ["HttpRemoteStore", "InMemoryRemoteStore"]

# Infrastructure Adapters Package
from .json_store import JsonCollectionStore

__all__ = ["JsonCollectionStore"]

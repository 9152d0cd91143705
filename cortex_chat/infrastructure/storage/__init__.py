from .key_value_store import KeyValueStorage, MemoryStorage, JsonFileStorage

__all__ = ['KeyValueStorage', 'MemoryStorage', 'JsonFileStorage']

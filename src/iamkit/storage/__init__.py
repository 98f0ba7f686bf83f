"""
Storage backends for iamkit.

The engine depends only on the IAMStorage contract (batch get_policies
and get_roles during evaluation). Backends provided here:

    - InMemoryStorage: dicts, for tests and static policy sets
    - JsonFileStorage: the reference JSON/YAML document on disk
    - SQLiteStorage: one document per row, plus a decision audit log

Any object with async or sync get_policies(ids) / get_roles(ids)
methods works with the engine; subclassing IAMStorage is optional.
"""

from iamkit.storage.base import IAMStorage
from iamkit.storage.json_file import JsonFileStorage, atomic_write
from iamkit.storage.memory import InMemoryStorage
from iamkit.storage.sqlite import SQLiteStorage

__all__ = [
    "IAMStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SQLiteStorage",
    "atomic_write",
]

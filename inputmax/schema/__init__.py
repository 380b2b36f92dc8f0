"""ORM table definitions."""

from .kv import KvEntry

__all__ = ["KvEntry"]

"""Storage backends for sessions, accounts and imported files."""

from .account_store import BalanceStore, SqlBalanceStore, SqlUserStore, UserStore
from .object_storage import LocalObjectStorage, ObjectStorage, get_object_storage
from .session_storage import SessionStorage, get_session_storage

__all__ = [
    "BalanceStore",
    "LocalObjectStorage",
    "ObjectStorage",
    "SessionStorage",
    "SqlBalanceStore",
    "SqlUserStore",
    "UserStore",
    "get_object_storage",
    "get_session_storage",
]

"""
Persistence for scraped league history.

SQLAlchemy models, the engine factory, the idempotent reconciliation store
and the team identity resolver.
"""

from .engine import create_schema, get_engine
from .identity import IdentityResolver
from .reconciliation import ReconciliationConflict, ReconciliationStore, StoreFailure

__all__ = [
    "create_schema",
    "get_engine",
    "IdentityResolver",
    "ReconciliationConflict",
    "ReconciliationStore",
    "StoreFailure",
]

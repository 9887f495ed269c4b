"""
Member sync: reconcile legacy SQL Server member data into the application store.

A pass pages through eligible legacy members, creates or updates each one
in the PostgreSQL store by member code, and reconciles its document
headers into transactions (canceled ones removed, new active ones
inserted). Members fail independently; passes never overlap.
"""

from .config import SyncSettings
from .engine import ReconciliationEngine
from .models import MemberSyncResult, PassResult, PassStatus

__version__ = "1.0.0"

__all__ = [
    "ReconciliationEngine",
    "SyncSettings",
    "PassResult",
    "PassStatus",
    "MemberSyncResult",
]

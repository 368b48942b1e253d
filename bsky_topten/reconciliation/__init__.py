"""
Reconciliation of freshly ingested candidates with the relational store.

Accounts are diffed by DID into inserts, updates and no-ops; posts are
inserted as one batch per pass.
"""

from .reconciler import (
    AccountPlan,
    AccountReconciler,
    AccountUpdate,
    PostReconciler,
    ReconciliationStats,
)

__all__ = [
    "AccountPlan",
    "AccountReconciler",
    "AccountUpdate",
    "PostReconciler",
    "ReconciliationStats",
]

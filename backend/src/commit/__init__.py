"""Commit orchestration: validated, compensating writes of a draft"""

from .results import CommitResult
from .orchestrator import CommitOrchestrator
from .reconciliation import OrphanReconciler

__all__ = ["CommitResult", "CommitOrchestrator", "OrphanReconciler"]

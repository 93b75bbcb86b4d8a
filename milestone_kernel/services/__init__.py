"""Services for the milestone kernel (write side)."""

from milestone_kernel.services.contribution_service import ContributionService
from milestone_kernel.services.funding_reconciler import FundingLedgerReconciler
from milestone_kernel.services.ledger_gateway import (
    LedgerTransactionService,
    SimulatedLedgerService,
)
from milestone_kernel.services.milestone_lifecycle import MilestoneLifecycleManager
from milestone_kernel.services.project_service import ProjectService
from milestone_kernel.services.token_service import GovernanceTokenService
from milestone_kernel.services.user_service import UserService
from milestone_kernel.services.voting_engine import VotingEngine

__all__ = [
    "ContributionService",
    "FundingLedgerReconciler",
    "GovernanceTokenService",
    "LedgerTransactionService",
    "MilestoneLifecycleManager",
    "ProjectService",
    "SimulatedLedgerService",
    "UserService",
    "VotingEngine",
]

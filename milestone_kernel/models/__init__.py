"""ORM models for the milestone governance kernel."""

from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.project import Project
from milestone_kernel.models.token_account import GovernanceTokenAccount
from milestone_kernel.models.transaction import Transaction
from milestone_kernel.models.user import User
from milestone_kernel.models.vote import Vote

__all__ = [
    "GovernanceTokenAccount",
    "Milestone",
    "Project",
    "Transaction",
    "User",
    "Vote",
]

"""
Module: milestone_kernel.models.token_account
Responsibility: ORM persistence for governance token balances.

Architecture position: Kernel > Models.  May import from db/.

Invariants enforced:
    - One account per voter (UNIQUE voter_id).
    - balance >= 0 (check constraint).  GovernanceTokenService spends with a
      conditional UPDATE so two concurrent spends can never overdraw.
    - balance == total_minted - total_spent after every service operation.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from milestone_kernel.db.base import Base, CreatedAtMixin, UTCDateTime, UUIDString


class GovernanceTokenAccount(CreatedAtMixin, Base):
    """Spendable voting weight held by one user."""

    __tablename__ = "governance_token_accounts"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_token_accounts_balance_non_negative"),
        CheckConstraint("total_minted >= 0", name="ck_token_accounts_minted_non_negative"),
        CheckConstraint("total_spent >= 0", name="ck_token_accounts_spent_non_negative"),
    )

    voter_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    balance: Mapped[int] = mapped_column(nullable=False, default=0)
    total_minted: Mapped[int] = mapped_column(nullable=False, default=0)
    total_spent: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<GovernanceTokenAccount {self.voter_id} balance={self.balance}>"

"""
Module: milestone_kernel.models.vote
Responsibility: ORM persistence for weighted governance votes.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - UNIQUE(milestone_id, voter_id): at most one vote per voter per
      milestone.  This constraint is the duplicate-vote arbiter under
      concurrency; VotingEngine maps its IntegrityError to
      DuplicateVoteError.
    - voting_power >= 1 (check constraint).
    - Votes are append-only once flushed (db/immutability.py).
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from milestone_kernel.db.base import Base, CreatedAtMixin, UUIDString
from milestone_kernel.domain.dtos import VoteRecord

if TYPE_CHECKING:
    from milestone_kernel.models.milestone import Milestone
    from milestone_kernel.models.user import User


class Vote(CreatedAtMixin, Base):
    """One voter's weighted yes/no decision on a milestone."""

    __tablename__ = "votes"

    __table_args__ = (
        UniqueConstraint("milestone_id", "voter_id", name="uq_votes_milestone_voter"),
        CheckConstraint("voting_power >= 1", name="ck_votes_voting_power_positive"),
        Index("ix_votes_milestone_id", "milestone_id"),
        Index("ix_votes_voter_id", "voter_id"),
    )

    milestone_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("milestones.id", ondelete="CASCADE"),
        nullable=False,
    )
    voter_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    vote: Mapped[bool] = mapped_column(Boolean, nullable=False)
    voting_power: Mapped[int] = mapped_column(nullable=False, default=1)

    milestone: Mapped["Milestone"] = relationship("Milestone", back_populates="votes")
    voter: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        direction = "yes" if self.vote else "no"
        return f"<Vote {self.voter_id} {direction} x{self.voting_power}>"

    def to_dto(self, include_wallet: bool = False) -> VoteRecord:
        return VoteRecord(
            id=self.id,
            milestone_id=self.milestone_id,
            voter_id=self.voter_id,
            vote=self.vote,
            voting_power=self.voting_power,
            created_at=self.created_at,
            voter_wallet=self.voter.wallet_address if include_wallet else None,
        )

"""
Module: milestone_kernel.models.milestone
Responsibility: ORM persistence for project milestones.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - amount_allocated > 0 (check constraint).
    - status limited to the lifecycle values (check constraint).  Forward-only
      movement is enforced by MilestoneLifecycleManager's conditional updates
      and, for ORM edits, by db/immutability.py.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from milestone_kernel.db.base import Base, CreatedAtMixin, UUIDString
from milestone_kernel.domain.dtos import MilestoneInfo
from milestone_kernel.domain.governance import MilestoneStatus

if TYPE_CHECKING:
    from milestone_kernel.models.project import Project
    from milestone_kernel.models.vote import Vote


class Milestone(CreatedAtMixin, Base):
    """A funding tranche that must be approved by vote before release."""

    __tablename__ = "milestones"

    __table_args__ = (
        CheckConstraint("amount_allocated > 0", name="ck_milestones_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'voting', 'approved', 'released', 'rejected')",
            name="ck_milestones_valid_status",
        ),
        Index("ix_milestones_project_id", "project_id"),
        Index("ix_milestones_status", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    amount_allocated: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MilestoneStatus.PENDING.value,
    )

    project: Mapped["Project"] = relationship("Project", back_populates="milestones")
    votes: Mapped[list["Vote"]] = relationship(
        "Vote",
        back_populates="milestone",
        order_by="Vote.created_at.desc()",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Milestone {self.id} {self.title!r} status={self.status}>"

    def to_dto(self) -> MilestoneInfo:
        return MilestoneInfo(
            id=self.id,
            project_id=self.project_id,
            title=self.title,
            description=self.description,
            amount_allocated=self.amount_allocated,
            status=MilestoneStatus(self.status),
            created_at=self.created_at,
        )

"""
Module: milestone_kernel.models.project
Responsibility: ORM persistence for funding projects.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - funding_target > 0; funded_amount >= 0; locked_amount >= 0 (check
      constraints).
    - status limited to active/completed/cancelled.
    - funded_amount and locked_amount are caches of the transaction ledger
      and change only through single-statement atomic increments issued by
      ProjectService / FundingLedgerReconciler.  ORM assignment of
      funded_amount after insert is rejected (db/immutability.py).

Ownership:
    Milestones and transactions are deleted by the store (ON DELETE CASCADE);
    the ORM never cascades deletes itself.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from milestone_kernel.db.base import Base, CreatedAtMixin, UUIDString
from milestone_kernel.domain.dtos import ProjectInfo
from milestone_kernel.domain.governance import ProjectStatus

if TYPE_CHECKING:
    from milestone_kernel.models.milestone import Milestone
    from milestone_kernel.models.transaction import Transaction
    from milestone_kernel.models.user import User


class Project(CreatedAtMixin, Base):
    """A creator's funding project."""

    __tablename__ = "projects"

    __table_args__ = (
        CheckConstraint("funding_target > 0", name="ck_projects_funding_target_positive"),
        CheckConstraint("funded_amount >= 0", name="ck_projects_funded_amount_non_negative"),
        CheckConstraint("locked_amount >= 0", name="ck_projects_locked_amount_non_negative"),
        CheckConstraint(
            "status IN ('active', 'completed', 'cancelled')",
            name="ck_projects_valid_status",
        ),
        Index("ix_projects_creator_id", "creator_id"),
        Index("ix_projects_status", "status"),
        Index("ix_projects_created_at", "created_at"),
    )

    creator_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    funding_target: Mapped[Decimal] = mapped_column(nullable=False)
    funded_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    locked_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.ACTIVE.value,
    )

    creator: Mapped["User"] = relationship("User", lazy="joined")
    milestones: Mapped[list["Milestone"]] = relationship(
        "Milestone",
        back_populates="project",
        order_by="Milestone.created_at",
        passive_deletes="all",
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="project",
        order_by="Transaction.created_at.desc()",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.title!r} status={self.status}>"

    def to_dto(self) -> ProjectInfo:
        return ProjectInfo(
            id=self.id,
            creator_id=self.creator_id,
            title=self.title,
            description=self.description,
            funding_target=self.funding_target,
            funded_amount=self.funded_amount,
            locked_amount=self.locked_amount,
            status=ProjectStatus(self.status),
            created_at=self.created_at,
        )

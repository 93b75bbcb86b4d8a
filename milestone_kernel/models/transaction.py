"""
Module: milestone_kernel.models.transaction
Responsibility: ORM persistence for the append-only funding ledger.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - amount > 0 (check constraint).
    - type limited to funding/release/refund (check constraint).
    - Rows are never updated or deleted through the ORM once flushed
      (db/immutability.py).  The sum of funding rows is the authoritative
      funded total for a project.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from milestone_kernel.db.base import Base, CreatedAtMixin, UUIDString
from milestone_kernel.domain.dtos import TransactionRecord
from milestone_kernel.domain.governance import TransactionType

if TYPE_CHECKING:
    from milestone_kernel.models.project import Project


class Transaction(CreatedAtMixin, Base):
    """A funding, release or refund movement recorded against a project."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "type IN ('funding', 'release', 'refund')",
            name="ck_transactions_valid_type",
        ),
        Index("ix_transactions_project_id", "project_id"),
        Index("ix_transactions_project_type", "project_id", "type"),
        Index("ix_transactions_tx_hash", "tx_hash"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    milestone_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("milestones.id", ondelete="SET NULL"),
        nullable=True,
    )
    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    destination: Mapped[str | None] = mapped_column(String(128), nullable=True)

    project: Mapped["Project"] = relationship("Project", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<Transaction {self.type} {self.amount} {self.tx_hash}>"

    def to_dto(self) -> TransactionRecord:
        return TransactionRecord(
            id=self.id,
            project_id=self.project_id,
            tx_hash=self.tx_hash,
            amount=self.amount,
            type=TransactionType(self.type),
            milestone_id=self.milestone_id,
            destination=self.destination,
            created_at=self.created_at,
        )

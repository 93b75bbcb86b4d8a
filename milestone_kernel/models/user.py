"""
Module: milestone_kernel.models.user
Responsibility: ORM persistence for wallet-identified users.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - UNIQUE(wallet_address): the wallet is the identity; upserts converge on
      one row per address.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from milestone_kernel.db.base import Base, CreatedAtMixin
from milestone_kernel.domain.dtos import UserInfo


class User(CreatedAtMixin, Base):
    """A user identified by wallet address."""

    __tablename__ = "users"

    wallet_address: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.id} {self.wallet_address}>"

    def to_dto(self) -> UserInfo:
        return UserInfo(
            id=self.id,
            wallet_address=self.wallet_address,
            created_at=self.created_at,
        )

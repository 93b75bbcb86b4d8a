"""
Service layer for wallet-identified users.

Users are created idempotently on first wallet connection.  Returns UserInfo
DTOs instead of ORM entities.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from milestone_kernel.domain.dtos import UserInfo
from milestone_kernel.exceptions import UserNotFoundError, ValidationError
from milestone_kernel.logging_config import get_logger
from milestone_kernel.models.user import User
from milestone_kernel.services.base import BaseService

logger = get_logger("services.users")


class UserService(BaseService[User]):
    """Registry of users keyed by wallet address."""

    def _find(self, wallet_address: str) -> User | None:
        return self.session.execute(
            select(User).where(User.wallet_address == wallet_address)
        ).scalar_one_or_none()

    def upsert_user(self, wallet_address: str) -> UserInfo:
        """
        Return the user for ``wallet_address``, creating it on first sight.

        Concurrent first connections for the same address converge on one
        row via UNIQUE(wallet_address).
        """
        address = (wallet_address or "").strip()
        if not address:
            raise ValidationError("wallet_address", "is required")

        user = self._find(address)
        if user is not None:
            return user.to_dto()

        savepoint = self.session.begin_nested()
        try:
            user = User(wallet_address=address, created_at=self.clock.now())
            self.session.add(user)
            self.session.flush()
            savepoint.commit()
            logger.info(
                "user_registered",
                extra={"user_id": str(user.id), "wallet_address": address},
            )
        except IntegrityError:
            logger.debug("user_upsert_race_retry", extra={"wallet_address": address})
            savepoint.rollback()
            user = self.session.execute(
                select(User)
                .where(User.wallet_address == address)
                .execution_options(populate_existing=True)
            ).scalar_one()
        return user.to_dto()

    def get_user_by_wallet(self, wallet_address: str) -> UserInfo | None:
        address = (wallet_address or "").strip()
        if not address:
            return None
        user = self._find(address)
        return user.to_dto() if user else None

    def get_user(self, user_id: UUID) -> UserInfo:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user.to_dto()

"""
GovernanceTokenService -- spendable voting weight per voter.

Responsibility:
    Mints governance tokens in fixed ratio to contributed amounts and spends
    them as voting weight.  One ``governance_token_accounts`` row per voter,
    independent of any single project.

Architecture position:
    Kernel > Services -- imperative shell.  Called by ContributionService
    (mint) and VotingEngine (spend).

Invariants enforced:
    - balance >= 0 at all times.  ``spend`` is a single conditional UPDATE
      (``balance = balance - :w WHERE balance >= :w``), so two concurrent
      spends against the same account can never overdraw it.
    - A failed spend mutates nothing.
    - balance == total_minted - total_spent.
    - minted = floor(amount / token_unit) * tokens_per_unit; a contribution
      minting less than one token is rejected before any mutation.

Failure modes:
    - InvalidAmountError: contribution mints < 1 token.
    - InvalidWeightError: weight is not an integer >= 1.
    - InsufficientBalanceError: weight exceeds the current balance.
    - UserNotFoundError: the voter has no user row.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from milestone_kernel.db.types import to_amount
from milestone_kernel.domain.dtos import validate_weight
from milestone_kernel.domain.governance import tokens_for_contribution
from milestone_kernel.exceptions import InsufficientBalanceError, UserNotFoundError
from milestone_kernel.logging_config import get_logger
from milestone_kernel.models.token_account import GovernanceTokenAccount
from milestone_kernel.models.user import User
from milestone_kernel.services.base import BaseService

logger = get_logger("services.tokens")


class GovernanceTokenService(BaseService[GovernanceTokenAccount]):
    """
    Service for governance token balances.

    Non-goals:
        - Does NOT record the funding transaction of a contribution; that is
          FundingLedgerReconciler's job, inside the same caller transaction.
    """

    def _ensure_account(self, voter_id: UUID) -> None:
        exists = self.session.execute(
            select(GovernanceTokenAccount.id).where(
                GovernanceTokenAccount.voter_id == voter_id
            )
        ).scalar_one_or_none()
        if exists is not None:
            return

        if self.session.get(User, voter_id) is None:
            raise UserNotFoundError(str(voter_id))

        # Concurrent first mints for the same voter race on UNIQUE(voter_id)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                GovernanceTokenAccount(
                    voter_id=voter_id,
                    balance=0,
                    total_minted=0,
                    total_spent=0,
                    created_at=self.clock.now(),
                )
            )
            self.session.flush()
            savepoint.commit()
            logger.debug("token_account_opened", extra={"voter_id": str(voter_id)})
        except IntegrityError:
            logger.debug("token_account_race_retry", extra={"voter_id": str(voter_id)})
            savepoint.rollback()

    def mint(self, voter_id: UUID, contributed_amount: Decimal | str | int) -> int:
        """
        Credit tokens for a contribution.

        Returns:
            The number of tokens minted.
        """
        amount = to_amount(contributed_amount)
        minted = tokens_for_contribution(amount, self.parameters)

        self._ensure_account(voter_id)
        self.session.execute(
            update(GovernanceTokenAccount)
            .where(GovernanceTokenAccount.voter_id == voter_id)
            .values(
                balance=GovernanceTokenAccount.balance + minted,
                total_minted=GovernanceTokenAccount.total_minted + minted,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "tokens_minted",
            extra={
                "voter_id": str(voter_id),
                "contributed_amount": str(amount),
                "minted": minted,
            },
        )
        return minted

    def spend(self, voter_id: UUID, weight: int) -> int:
        """
        Atomically decrement the balance by ``weight``.

        Returns:
            The balance after the spend.
        """
        validate_weight(weight)

        result = self.session.execute(
            update(GovernanceTokenAccount)
            .where(
                GovernanceTokenAccount.voter_id == voter_id,
                GovernanceTokenAccount.balance >= weight,
            )
            .values(
                balance=GovernanceTokenAccount.balance - weight,
                total_spent=GovernanceTokenAccount.total_spent + weight,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = self.balance_of(voter_id)
            logger.warning(
                "token_spend_rejected",
                extra={
                    "voter_id": str(voter_id),
                    "requested": weight,
                    "available": available,
                },
            )
            raise InsufficientBalanceError(str(voter_id), weight, available)

        new_balance = self.balance_of(voter_id)
        logger.debug(
            "tokens_spent",
            extra={"voter_id": str(voter_id), "weight": weight, "balance": new_balance},
        )
        return new_balance

    def balance_of(self, voter_id: UUID) -> int:
        """Current balance; 0 for a voter with no account."""
        balance = self.session.execute(
            select(GovernanceTokenAccount.balance).where(
                GovernanceTokenAccount.voter_id == voter_id
            )
        ).scalar_one_or_none()
        return balance or 0

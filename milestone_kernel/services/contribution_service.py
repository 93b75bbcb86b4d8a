"""
ContributionService -- one contribution event, end to end.

Responsibility:
    A contribution has two effects that must land together: the funding
    transaction (with the atomic increment of the project's totals) and the
    governance-token credit to the contributor.  This service performs both
    inside the caller's transaction, then asks the ledger to mint matching
    on-chain tokens to the contributor's wallet.

Architecture position:
    Kernel > Services -- orchestration over FundingLedgerReconciler and
    GovernanceTokenService.

Invariants enforced:
    - The mint is computed before any mutation, so a contribution too small
      to mint one token changes nothing.
    - Only active projects accept contributions.
    - A failed on-chain mint does not fail the contribution: it falls back
      to a simulated token category and the result says so.

Failure modes:
    - InvalidAmountError: amount not positive, or mints < 1 token.
    - UserNotFoundError / ProjectNotFoundError.
    - ValidationError: project not active, or tx_hash missing.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from milestone_kernel.db.types import round_money, to_amount
from milestone_kernel.domain.clock import Clock
from milestone_kernel.domain.dtos import ContributionResult
from milestone_kernel.domain.governance import (
    GovernanceParameters,
    ProjectStatus,
    tokens_for_contribution,
)
from milestone_kernel.exceptions import (
    LedgerServiceError,
    ProjectNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from milestone_kernel.logging_config import LogContext, get_logger
from milestone_kernel.models.project import Project
from milestone_kernel.models.user import User
from milestone_kernel.services.funding_reconciler import FundingLedgerReconciler
from milestone_kernel.services.ledger_gateway import LedgerTransactionService
from milestone_kernel.services.token_service import GovernanceTokenService

logger = get_logger("services.contributions")


class ContributionService:
    """
    Service for recording contributions.

    Usage:
        with session_scope() as session:
            result = ContributionService(session, ledger).contribute(
                project_id, contributor_id, "0.01", tx_hash,
            )
    """

    def __init__(
        self,
        session: Session,
        ledger: LedgerTransactionService | None = None,
        clock: Clock | None = None,
        parameters: GovernanceParameters | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._reconciler = FundingLedgerReconciler(
            session, ledger=ledger, clock=clock, parameters=parameters,
        )
        self._tokens = GovernanceTokenService(session, clock, parameters)
        self._parameters = self._tokens.parameters

    def contribute(
        self,
        project_id: UUID,
        contributor_id: UUID,
        amount: Decimal | str | int,
        tx_hash: str,
    ) -> ContributionResult:
        value = round_money(to_amount(amount))
        # Rejects contributions minting < 1 token before any write
        tokens_for_contribution(value, self._parameters)

        contributor = self._session.get(User, contributor_id)
        if contributor is None:
            raise UserNotFoundError(str(contributor_id))
        project = self._session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        if project.status != ProjectStatus.ACTIVE.value:
            raise ValidationError(
                "project", f"is {project.status} and not accepting contributions",
            )

        with LogContext.bind(project_id=project_id, actor_id=contributor_id):
            transaction = self._reconciler.record_contribution(project_id, tx_hash, value)
            minted = self._tokens.mint(contributor_id, value)
            category, simulated = self._mint_onchain(contributor.wallet_address, minted)
            balance = self._tokens.balance_of(contributor_id)

            logger.info(
                "contribution_completed",
                extra={
                    "amount": str(value),
                    "tokens_minted": minted,
                    "token_balance": balance,
                    "mint_simulated": simulated,
                },
            )
            return ContributionResult(
                transaction=transaction,
                tokens_minted=minted,
                token_balance=balance,
                token_category=category,
                mint_simulated=simulated,
            )

    def _mint_onchain(self, wallet_address: str, minted: int) -> tuple[str, bool]:
        """Mint on the ledger, falling back to a simulated category."""
        if self._ledger is not None:
            try:
                return self._ledger.mint(wallet_address, minted), False
            except LedgerServiceError as exc:
                logger.warning(
                    "ledger_mint_fallback",
                    extra={"wallet_address": wallet_address, "reason": exc.reason},
                )
        return f"simulated_{secrets.token_hex(16)}", True

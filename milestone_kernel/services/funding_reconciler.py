"""
FundingLedgerReconciler -- the append-only funding ledger and its caches.

Responsibility:
    Records funding, release and refund transactions against a project and
    keeps the project's cached totals consistent with them:

        funded_amount == SUM(amount) of funding transactions
        locked_amount == funded - released - refunded, floored at 0

Architecture position:
    Kernel > Services -- imperative shell.  Calls the external
    LedgerTransactionService for releases and refunds, the
    MilestoneLifecycleManager for ``approved -> released``, and
    ProjectService for the atomic increment.

Invariants enforced:
    - Contributions increment the cached totals with one atomic statement.
    - A release requires an approved milestone, an amount within the
      allocation, and an amount within the locked balance plus the fee
      tolerance.
    - Nothing is recorded unless the ledger call succeeded: the ledger is
      called before the transaction row is appended, and its failure
      propagates so the caller's transaction rolls back.
    - The project row is locked (``SELECT ... FOR UPDATE``) across the
      checks, the single ledger call and the bookkeeping of one release or
      refund, so two releases cannot both draw on the same locked balance.
    - The cache is verified, never rewritten wholesale.

Failure modes:
    - InvalidAmountError / ValidationError: bad amount, hash or destination.
    - ProjectNotFoundError / MilestoneNotFoundError.
    - NotApprovedError: release on a milestone that is not approved.
    - AllocationExceededError: release above the milestone allocation.
    - InsufficientLockedFundsError: release or refund above the locked balance.
    - LedgerServiceError (or any ledger failure): propagated verbatim.

Audit relevance:
    ``contribution_recorded``, ``release_recorded``, ``refund_recorded`` and
    ``funded_amount_drift`` are logged with project context.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from milestone_kernel.db.types import round_money, to_amount
from milestone_kernel.domain.clock import Clock
from milestone_kernel.domain.dtos import (
    FundingReconciliation,
    ReleaseResult,
    TransactionRecord,
)
from milestone_kernel.domain.governance import (
    GovernanceParameters,
    MilestoneStatus,
    TransactionType,
)
from milestone_kernel.exceptions import (
    AllocationExceededError,
    InsufficientLockedFundsError,
    InvalidAmountError,
    MilestoneNotFoundError,
    NotApprovedError,
    ProjectNotFoundError,
    ValidationError,
)
from milestone_kernel.logging_config import LogContext, get_logger
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.project import Project
from milestone_kernel.models.transaction import Transaction
from milestone_kernel.services.base import BaseService
from milestone_kernel.services.ledger_gateway import LedgerTransactionService
from milestone_kernel.services.milestone_lifecycle import MilestoneLifecycleManager
from milestone_kernel.services.project_service import ProjectService

logger = get_logger("services.reconciler")


def _positive(value: Decimal | str | int) -> Decimal:
    amount = to_amount(value)
    if amount <= 0:
        raise InvalidAmountError(str(amount), "must be > 0")
    return round_money(amount)


def _required(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field_name, "is required")
    return cleaned


class FundingLedgerReconciler(BaseService[Transaction]):
    """
    Service for the project transaction ledger.

    Contract:
        ``ledger`` is required for releases and refunds only; recording
        contributions and reading totals work without it.
    """

    def __init__(
        self,
        session: Session,
        ledger: LedgerTransactionService | None = None,
        clock: Clock | None = None,
        parameters: GovernanceParameters | None = None,
        lifecycle: MilestoneLifecycleManager | None = None,
        projects: ProjectService | None = None,
    ):
        super().__init__(session, clock, parameters)
        self.ledger = ledger
        self.lifecycle = lifecycle or MilestoneLifecycleManager(
            session, self.clock, self.parameters,
        )
        self.projects = projects or ProjectService(session, self.clock, self.parameters)

    def _require_ledger(self) -> LedgerTransactionService:
        if self.ledger is None:
            raise RuntimeError("FundingLedgerReconciler needs a ledger service to move funds")
        return self.ledger

    def _append(
        self,
        project_id: UUID,
        tx_hash: str,
        amount: Decimal,
        tx_type: TransactionType,
        milestone_id: UUID | None = None,
        destination: str | None = None,
    ) -> Transaction:
        transaction = Transaction(
            project_id=project_id,
            milestone_id=milestone_id,
            tx_hash=tx_hash,
            amount=amount,
            type=tx_type.value,
            destination=destination,
            created_at=self.clock.now(),
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def _lock_project(self, project_id: UUID) -> Decimal:
        """Lock the project row and return its locked amount."""
        locked = self.session.execute(
            select(Project.locked_amount)
            .where(Project.id == project_id)
            .with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise ProjectNotFoundError(str(project_id))
        return locked

    def _release_locked(self, project_id: UUID, amount: Decimal) -> Decimal:
        self.session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(
                locked_amount=case(
                    (Project.locked_amount > amount, Project.locked_amount - amount),
                    else_=Decimal("0"),
                )
            )
            .execution_options(synchronize_session=False)
        )
        project = self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return project.locked_amount

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def record_contribution(
        self,
        project_id: UUID,
        tx_hash: str,
        amount: Decimal | str | int,
    ) -> TransactionRecord:
        """Append a funding transaction and atomically increment the totals."""
        value = _positive(amount)
        tx_hash = _required(tx_hash, "tx_hash")

        with LogContext.bind(project_id=project_id):
            self.projects.increment_funded_amount(project_id, value)
            transaction = self._append(project_id, tx_hash, value, TransactionType.FUNDING)
            logger.info(
                "contribution_recorded",
                extra={"tx_hash": tx_hash, "amount": str(value)},
            )
            return transaction.to_dto()

    def record_release(
        self,
        project_id: UUID,
        milestone_id: UUID,
        destination: str,
        amount: Decimal | str | int,
    ) -> ReleaseResult:
        """
        Release ``amount`` of an approved milestone's allocation to ``destination``.

        Returns:
            ReleaseResult whose ``tx_hash`` is the ledger transaction id.
        """
        value = _positive(amount)
        destination = _required(destination, "destination")
        ledger = self._require_ledger()

        with LogContext.bind(project_id=project_id, milestone_id=milestone_id):
            locked = self._lock_project(project_id)
            milestone = self.session.execute(
                select(Milestone)
                .where(Milestone.id == milestone_id, Milestone.project_id == project_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if milestone is None:
                raise MilestoneNotFoundError(str(milestone_id), str(project_id))

            if milestone.status != MilestoneStatus.APPROVED.value:
                raise NotApprovedError(str(milestone_id), milestone.status)
            if value > milestone.amount_allocated:
                raise AllocationExceededError(
                    str(milestone_id), str(value), str(milestone.amount_allocated),
                )
            if value > locked + self.parameters.release_tolerance:
                raise InsufficientLockedFundsError(str(project_id), str(value), str(locked))

            tx_hash = ledger.send(destination, value)

            transaction = self._append(
                project_id,
                tx_hash,
                value,
                TransactionType.RELEASE,
                milestone_id=milestone_id,
                destination=destination,
            )
            transition = self.lifecycle.mark_released(milestone_id)
            remaining = self._release_locked(project_id, value)

            logger.info(
                "release_recorded",
                extra={
                    "tx_hash": tx_hash,
                    "amount": str(value),
                    "destination": destination,
                    "locked_remaining": str(remaining),
                },
            )
            return ReleaseResult(
                tx_hash=tx_hash,
                transaction=transaction.to_dto(),
                transition=transition,
                locked_remaining=remaining,
            )

    def record_refund(
        self,
        project_id: UUID,
        destination: str,
        amount: Decimal | str | int,
    ) -> TransactionRecord:
        """
        Return ``amount`` of unreleased funds to ``destination``.

        The funded amount is unchanged; only the locked balance shrinks.
        """
        value = _positive(amount)
        destination = _required(destination, "destination")
        ledger = self._require_ledger()

        with LogContext.bind(project_id=project_id):
            locked = self._lock_project(project_id)
            if value > locked + self.parameters.release_tolerance:
                raise InsufficientLockedFundsError(str(project_id), str(value), str(locked))

            tx_hash = ledger.send(destination, value)
            transaction = self._append(
                project_id, tx_hash, value, TransactionType.REFUND, destination=destination,
            )
            remaining = self._release_locked(project_id, value)

            logger.info(
                "refund_recorded",
                extra={
                    "tx_hash": tx_hash,
                    "amount": str(value),
                    "destination": destination,
                    "locked_remaining": str(remaining),
                },
            )
            return transaction.to_dto()

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def funding_total(self, project_id: UUID) -> Decimal:
        """Sum of funding transactions: the authoritative funded total."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.project_id == project_id,
                Transaction.type == TransactionType.FUNDING.value,
            )
        ).scalar_one()
        return round_money(Decimal(str(total)))

    def locked_balance(self, project_id: UUID) -> Decimal:
        locked = self.session.execute(
            select(Project.locked_amount).where(Project.id == project_id)
        ).scalar_one_or_none()
        if locked is None:
            raise ProjectNotFoundError(str(project_id))
        return locked

    def verify_funded_amount(self, project_id: UUID) -> FundingReconciliation:
        """Compare the cached funded amount with the funding ledger."""
        cached = self.session.execute(
            select(Project.funded_amount).where(Project.id == project_id)
        ).scalar_one_or_none()
        if cached is None:
            raise ProjectNotFoundError(str(project_id))

        reconciliation = FundingReconciliation(
            project_id=project_id,
            cached_funded_amount=round_money(cached),
            ledger_funding_total=self.funding_total(project_id),
        )
        if not reconciliation.is_consistent:
            logger.warning(
                "funded_amount_drift",
                extra={
                    "project_id": str(project_id),
                    "cached_funded_amount": str(reconciliation.cached_funded_amount),
                    "ledger_funding_total": str(reconciliation.ledger_funding_total),
                    "difference": str(reconciliation.difference),
                },
            )
        return reconciliation

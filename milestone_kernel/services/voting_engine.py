"""
VotingEngine -- weighted, one-per-voter milestone votes.

Responsibility:
    Records votes, recomputes tallies from stored votes and hands each new
    tally to the MilestoneLifecycleManager.

Architecture position:
    Kernel > Services -- imperative shell.  Composes GovernanceTokenService
    (spend) and MilestoneLifecycleManager (status decision).

Invariants enforced:
    - At most one vote per (milestone, voter).  The store's
      UNIQUE(milestone_id, voter_id) is the arbiter: the vote is inserted
      and a uniqueness violation is mapped to DuplicateVoteError.  There is
      no check-then-insert.
    - Insert-then-spend inside one savepoint.  A duplicate vote spends
      nothing; a spend that fails (a concurrent vote drained the balance)
      rolls the insert back with it.
    - Tallies are recomputed from stored votes on every read; no tally is
      cached.
    - Approval is a strict majority of cast weight.

Failure modes:
    - InvalidWeightError: weight is not an integer >= 1.
    - MilestoneNotFoundError / UserNotFoundError: unknown references.
    - VotingClosedError: milestone is released or rejected.
    - InsufficientBalanceError: weight exceeds the voter's balance.
    - DuplicateVoteError: voter already voted on the milestone.

Audit relevance:
    Every accepted vote logs ``vote_cast`` with the resulting tally.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from milestone_kernel.domain.clock import Clock
from milestone_kernel.domain.dtos import VoteResult, validate_weight
from milestone_kernel.domain.governance import (
    TERMINAL_MILESTONE_STATUSES,
    GovernanceParameters,
    MilestoneStatus,
    VoteTally,
    tally_votes,
)
from milestone_kernel.exceptions import (
    DuplicateVoteError,
    InsufficientBalanceError,
    MilestoneNotFoundError,
    UserNotFoundError,
    ValidationError,
    VotingClosedError,
)
from milestone_kernel.logging_config import LogContext, get_logger
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.user import User
from milestone_kernel.models.vote import Vote
from milestone_kernel.services.base import BaseService
from milestone_kernel.services.milestone_lifecycle import MilestoneLifecycleManager
from milestone_kernel.services.token_service import GovernanceTokenService

logger = get_logger("services.voting")


class VotingEngine(BaseService[Vote]):
    """
    Service for casting and tallying milestone votes.

    Usage:
        with session_scope() as session:
            result = VotingEngine(session).cast_vote(milestone_id, voter_id, True, 60)
            result.tally.yes_percent
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        parameters: GovernanceParameters | None = None,
        tokens: GovernanceTokenService | None = None,
        lifecycle: MilestoneLifecycleManager | None = None,
    ):
        super().__init__(session, clock, parameters)
        self.tokens = tokens or GovernanceTokenService(session, self.clock, self.parameters)
        self.lifecycle = lifecycle or MilestoneLifecycleManager(
            session, self.clock, self.parameters,
        )

    def cast_vote(
        self,
        milestone_id: UUID,
        voter_id: UUID,
        direction: bool,
        weight: int,
    ) -> VoteResult:
        """
        Record a vote, spend its weight and apply the resulting status.

        Preconditions:
            - ``direction`` is a bool (True = yes).
            - ``weight`` is an integer >= 1 and <= the voter's balance.

        Postconditions:
            - Exactly one new Vote row; the voter's balance is lower by
              ``weight``; the milestone status reflects the new tally.
        """
        validate_weight(weight)
        if not isinstance(direction, bool):
            raise ValidationError("vote", "must be a boolean (True=yes, False=no)")

        with LogContext.bind(milestone_id=milestone_id, actor_id=voter_id):
            status = self.session.execute(
                select(Milestone.status).where(Milestone.id == milestone_id)
            ).scalar_one_or_none()
            if status is None:
                raise MilestoneNotFoundError(str(milestone_id))
            if MilestoneStatus(status) in TERMINAL_MILESTONE_STATUSES:
                raise VotingClosedError(str(milestone_id), status)
            if self.session.get(User, voter_id) is None:
                raise UserNotFoundError(str(voter_id))

            available = self.tokens.balance_of(voter_id)
            if weight > available:
                # an existing vote outranks the balance failure
                if self._vote_exists(milestone_id, voter_id):
                    logger.info("vote_rejected_duplicate")
                    raise DuplicateVoteError(str(milestone_id), str(voter_id))
                logger.warning(
                    "vote_rejected_insufficient_balance",
                    extra={"requested": weight, "available": available},
                )
                raise InsufficientBalanceError(str(voter_id), weight, available)

            vote = Vote(
                milestone_id=milestone_id,
                voter_id=voter_id,
                vote=direction,
                voting_power=weight,
                created_at=self.clock.now(),
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(vote)
                self.session.flush()
            except IntegrityError as exc:
                savepoint.rollback()
                if self._vote_exists(milestone_id, voter_id):
                    logger.info("vote_rejected_duplicate")
                    raise DuplicateVoteError(str(milestone_id), str(voter_id)) from exc
                raise
            try:
                remaining = self.tokens.spend(voter_id, weight)
            except InsufficientBalanceError:
                savepoint.rollback()
                raise
            savepoint.commit()

            tally = self.tally_of(milestone_id)
            transition = self.lifecycle.on_tally(milestone_id, tally)

            logger.info(
                "vote_cast",
                extra={
                    "vote_id": str(vote.id),
                    "direction": "yes" if direction else "no",
                    "weight": weight,
                    "remaining_balance": remaining,
                    **tally.as_dict(),
                    "status": transition.to_status.value,
                },
            )
            return VoteResult(
                vote=vote.to_dto(),
                tally=tally,
                transition=transition,
                remaining_balance=remaining,
            )

    def tally_of(self, milestone_id: UUID) -> VoteTally:
        """Weighted tally recomputed from the stored votes."""
        rows = self.session.execute(
            select(Vote.vote, func.coalesce(func.sum(Vote.voting_power), 0))
            .where(Vote.milestone_id == milestone_id)
            .group_by(Vote.vote)
        ).all()
        return tally_votes(
            ((bool(direction), int(weight)) for direction, weight in rows),
            self.parameters.approval_threshold,
        )

    def _vote_exists(self, milestone_id: UUID, voter_id: UUID) -> bool:
        return self.session.execute(
            select(
                exists().where(
                    Vote.milestone_id == milestone_id,
                    Vote.voter_id == voter_id,
                )
            )
        ).scalar()

    def has_voted(self, milestone_id: UUID | None, voter_id: UUID | None) -> bool:
        """
        Whether ``voter_id`` has voted on ``milestone_id``.

        Display-only: returns False for missing inputs or when the store
        cannot answer.  ``cast_vote`` remains the authoritative check.
        """
        if not milestone_id or not voter_id:
            return False
        try:
            return bool(self._vote_exists(milestone_id, voter_id))
        except SQLAlchemyError:
            logger.warning(
                "has_voted_check_failed",
                extra={"milestone_id": str(milestone_id), "voter_id": str(voter_id)},
                exc_info=True,
            )
            return False

"""
MilestoneLifecycleManager -- the milestone status state machine.

Responsibility:
    Owns every milestone status change.  Voting outcomes arrive through
    ``on_tally``; releases through ``mark_released``; manual rejection
    through ``reject``.  Each call reports the transition it made (or the
    unchanged status) back to the caller.

Architecture position:
    Kernel > Services -- imperative shell.  Called by VotingEngine and
    FundingLedgerReconciler.  Status rules come from
    ``milestone_kernel.domain.governance``.

Invariants enforced:
    - Status moves only along the lifecycle graph:
          pending -> voting -> approved -> released
          pending -> approved            (first vote already clears the threshold)
          pending | voting -> rejected
      ``released`` and ``rejected`` are terminal.
    - With the approval latch on (default) approved never returns to voting.
      With it off, a diluted majority moves approved back to voting.
    - Every change is a conditional UPDATE guarded by the expected current
      status, so two concurrent callers can never both apply a transition
      from the same state.

Failure modes:
    - MilestoneNotFoundError: unknown milestone.
    - InvalidMilestoneTransitionError: requested edge is not in the graph
      for the current status.
    - NotProjectCreatorError: rejection attempted by someone other than the
      project creator.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update

from milestone_kernel.domain.dtos import MilestoneTransition
from milestone_kernel.domain.governance import (
    TERMINAL_MILESTONE_STATUSES,
    MilestoneStatus,
    VoteTally,
    transitions_for,
)
from milestone_kernel.exceptions import (
    InvalidMilestoneTransitionError,
    MilestoneNotFoundError,
    NotProjectCreatorError,
)
from milestone_kernel.logging_config import get_logger
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.project import Project
from milestone_kernel.services.base import BaseService

logger = get_logger("services.lifecycle")

# Bound on re-reads when a concurrent caller moves the status first
_MAX_TALLY_ATTEMPTS = 3


class MilestoneLifecycleManager(BaseService[Milestone]):
    """
    Service that applies milestone status transitions.

    Non-goals:
        - Does NOT retry transitions on its own; each is caused synchronously
          by a vote or a release.
    """

    def status_of(self, milestone_id: UUID) -> MilestoneStatus:
        status = self.session.execute(
            select(Milestone.status).where(Milestone.id == milestone_id)
        ).scalar_one_or_none()
        if status is None:
            raise MilestoneNotFoundError(str(milestone_id))
        return MilestoneStatus(status)

    def target_for(self, current: MilestoneStatus, tally: VoteTally) -> MilestoneStatus:
        """Status a milestone in ``current`` should hold given ``tally``."""
        if current in TERMINAL_MILESTONE_STATUSES:
            return current
        if tally.approved:
            return MilestoneStatus.APPROVED
        if tally.total == 0:
            return current
        if current == MilestoneStatus.PENDING:
            return MilestoneStatus.VOTING
        if current == MilestoneStatus.APPROVED and not self.parameters.approval_latch:
            return MilestoneStatus.VOTING
        return current

    def _apply(
        self,
        milestone_id: UUID,
        allowed_from: Iterable[MilestoneStatus],
        to_status: MilestoneStatus,
    ) -> bool:
        result = self.session.execute(
            update(Milestone)
            .where(
                Milestone.id == milestone_id,
                Milestone.status.in_([s.value for s in allowed_from]),
            )
            .values(status=to_status.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        # Refresh any identity-mapped instance with the new status
        self.session.execute(
            select(Milestone)
            .where(Milestone.id == milestone_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return True

    def _transition(
        self,
        milestone_id: UUID,
        from_status: MilestoneStatus,
        to_status: MilestoneStatus,
    ) -> MilestoneTransition:
        graph = transitions_for(self.parameters.approval_latch)
        if to_status not in graph[from_status]:
            raise InvalidMilestoneTransitionError(
                str(milestone_id), from_status.value, to_status.value,
            )
        if not self._apply(milestone_id, [from_status], to_status):
            current = self.status_of(milestone_id)
            raise InvalidMilestoneTransitionError(
                str(milestone_id), current.value, to_status.value,
            )
        logger.info(
            "milestone_transitioned",
            extra={
                "milestone_id": str(milestone_id),
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        return MilestoneTransition(milestone_id, from_status, to_status)

    def on_tally(self, milestone_id: UUID, tally: VoteTally) -> MilestoneTransition:
        """
        Apply the status implied by a freshly recomputed tally.

        Returns an unchanged transition when the tally implies no move.
        """
        for _ in range(_MAX_TALLY_ATTEMPTS):
            current = self.status_of(milestone_id)
            target = self.target_for(current, tally)
            if target == current:
                return MilestoneTransition(milestone_id, current, current)
            if self._apply(milestone_id, [current], target):
                logger.info(
                    "milestone_transitioned",
                    extra={
                        "milestone_id": str(milestone_id),
                        "from_status": current.value,
                        "to_status": target.value,
                        "yes_weight": tally.yes_weight,
                        "no_weight": tally.no_weight,
                    },
                )
                return MilestoneTransition(milestone_id, current, target)
            logger.debug(
                "milestone_transition_contended",
                extra={"milestone_id": str(milestone_id), "observed": current.value},
            )
        current = self.status_of(milestone_id)
        return MilestoneTransition(milestone_id, current, current)

    def mark_released(self, milestone_id: UUID) -> MilestoneTransition:
        """approved -> released, after a successful ledger send."""
        return self._transition(
            milestone_id, self.status_of(milestone_id), MilestoneStatus.RELEASED,
        )

    def reject(self, milestone_id: UUID, actor_id: UUID) -> MilestoneTransition:
        """Manual, creator-only rejection of a pending or voting milestone."""
        row = self.session.execute(
            select(Milestone.status, Milestone.project_id, Project.creator_id)
            .join(Project, Project.id == Milestone.project_id)
            .where(Milestone.id == milestone_id)
        ).one_or_none()
        if row is None:
            raise MilestoneNotFoundError(str(milestone_id))
        status, project_id, creator_id = row
        if creator_id != actor_id:
            raise NotProjectCreatorError(str(project_id), str(actor_id))
        return self._transition(
            milestone_id, MilestoneStatus(status), MilestoneStatus.REJECTED,
        )

"""
Module: milestone_kernel.selectors.project_selector
Responsibility: Read-only listings and aggregates over projects, milestones,
    votes and transactions.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: no mutations.
    - Tallies are recomputed from stored votes in the same query that lists
      the milestones; no tally is cached.
    - Aggregates are computed per table (separate scalar subqueries), so
      joining milestones and transactions never multiplies sums.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
    - ValidationError for an unknown status filter or bad paging values.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Integer, case, func, select
from sqlalchemy.orm import Session, selectinload

from milestone_kernel.db.types import round_money
from milestone_kernel.domain.dtos import (
    MilestoneView,
    ProjectInfo,
    ProjectSummary,
    TransactionRecord,
    VoteRecord,
)
from milestone_kernel.domain.governance import (
    GovernanceParameters,
    MilestoneStatus,
    ProjectStatus,
    TransactionType,
    VoteTally,
)
from milestone_kernel.exceptions import ValidationError
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.project import Project
from milestone_kernel.models.transaction import Transaction
from milestone_kernel.models.vote import Vote
from milestone_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 20


class ProjectSelector(BaseSelector[Project]):
    """
    Selector for project-centred read queries.

    Guarantees:
        - Project and transaction listings are newest first.
        - Milestones are listed in creation order.
        - Vote listings are newest first and carry the voter's wallet.
    """

    def __init__(self, session: Session, parameters: GovernanceParameters | None = None):
        super().__init__(session, parameters)

    def list_projects(
        self,
        status: ProjectStatus | str | None = None,
        creator_id: UUID | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[ProjectInfo]:
        if limit < 1:
            raise ValidationError("limit", "must be >= 1")
        if offset < 0:
            raise ValidationError("offset", "must be >= 0")

        query = select(Project)
        if status is not None:
            try:
                query = query.where(Project.status == ProjectStatus(status).value)
            except ValueError as exc:
                raise ValidationError("status", f"unknown project status {status!r}") from exc
        if creator_id is not None:
            query = query.where(Project.creator_id == creator_id)

        query = query.order_by(Project.created_at.desc(), Project.id).limit(limit).offset(offset)
        return [p.to_dto() for p in self.session.execute(query).scalars().unique()]

    def project_summary(self, project_id: UUID) -> ProjectSummary | None:
        project = self.session.get(Project, project_id)
        if project is None:
            return None

        milestone_counts = self.session.execute(
            select(
                func.count(Milestone.id),
                func.coalesce(
                    func.sum(
                        case((Milestone.status == MilestoneStatus.APPROVED.value, 1), else_=0)
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case((Milestone.status == MilestoneStatus.RELEASED.value, 1), else_=0)
                    ),
                    0,
                ),
            ).where(Milestone.project_id == project_id)
        ).one()

        tx_count, funded_onchain = self.session.execute(
            select(
                func.count(Transaction.id),
                func.coalesce(
                    func.sum(
                        case(
                            (Transaction.type == TransactionType.FUNDING.value, Transaction.amount),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(Transaction.project_id == project_id)
        ).one()

        return ProjectSummary(
            project=project.to_dto(),
            creator_wallet=project.creator.wallet_address,
            milestone_count=int(milestone_counts[0]),
            approved_milestones=int(milestone_counts[1]),
            released_milestones=int(milestone_counts[2]),
            transaction_count=int(tx_count),
            total_funded_onchain=round_money(Decimal(str(funded_onchain))),
        )

    def milestones_with_tallies(self, project_id: UUID) -> list[MilestoneView]:
        yes_weight = func.coalesce(
            func.sum(case((Vote.vote.is_(True), Vote.voting_power), else_=0)), 0,
        ).cast(Integer)
        no_weight = func.coalesce(
            func.sum(case((Vote.vote.is_(False), Vote.voting_power), else_=0)), 0,
        ).cast(Integer)

        rows = self.session.execute(
            select(Milestone, yes_weight, no_weight)
            .outerjoin(Vote, Vote.milestone_id == Milestone.id)
            .where(Milestone.project_id == project_id)
            .group_by(Milestone.id)
            .order_by(Milestone.created_at, Milestone.id)
        ).all()

        threshold = self.parameters.approval_threshold
        return [
            MilestoneView(
                milestone=milestone.to_dto(),
                tally=VoteTally(
                    yes_weight=int(yes),
                    no_weight=int(no),
                    approval_threshold=threshold,
                ),
            )
            for milestone, yes, no in rows
        ]

    def transactions_by_project(self, project_id: UUID) -> list[TransactionRecord]:
        transactions = self.session.execute(
            select(Transaction)
            .where(Transaction.project_id == project_id)
            .order_by(Transaction.created_at.desc(), Transaction.id)
        ).scalars()
        return [t.to_dto() for t in transactions]

    def votes_by_milestone(self, milestone_id: UUID) -> list[VoteRecord]:
        votes = self.session.execute(
            select(Vote)
            .where(Vote.milestone_id == milestone_id)
            .options(selectinload(Vote.voter))
            .order_by(Vote.created_at.desc(), Vote.id)
        ).scalars()
        return [v.to_dto(include_wallet=True) for v in votes]

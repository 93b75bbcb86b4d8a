"""
ProjectService -- projects, milestones and the funded-amount increment.

Responsibility:
    Creates projects and their milestones, changes project status, and owns
    the store's single atomic increment of a project's cached totals.

Architecture position:
    Kernel > Services -- imperative shell.  FundingLedgerReconciler calls
    ``increment_funded_amount`` when it records a contribution.

Invariants enforced:
    - funding_target > 0 and amount_allocated > 0 (validated before insert,
      backed by check constraints).
    - New projects start active with funded_amount = locked_amount = 0.
    - funded_amount is only ever changed by ``increment_funded_amount``, a
      single ``UPDATE ... SET funded_amount = funded_amount + :amount``
      statement.  No read-modify-write in application code, so concurrent
      contributions never lose an update.
    - ``create_milestones`` is all-or-nothing: every spec is validated before
      the first insert.

Failure modes:
    - ValidationError / InvalidAmountError: bad titles, amounts or statuses.
    - UserNotFoundError / ProjectNotFoundError / MilestoneNotFoundError.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update

from milestone_kernel.db.types import round_money, to_amount
from milestone_kernel.domain.dtos import MilestoneInfo, MilestoneSpec, ProjectInfo
from milestone_kernel.domain.governance import MilestoneStatus, ProjectStatus
from milestone_kernel.exceptions import (
    InvalidAmountError,
    MilestoneNotFoundError,
    ProjectNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from milestone_kernel.logging_config import LogContext, get_logger
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.project import Project
from milestone_kernel.models.user import User
from milestone_kernel.services.base import BaseService

logger = get_logger("services.projects")


def _clean_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("title", "is required")
    if len(cleaned) > 200:
        raise ValidationError("title", "must be at most 200 characters")
    return cleaned


def _positive_amount(value: Decimal | str | int, field_name: str) -> Decimal:
    amount = to_amount(value)
    if amount <= 0:
        raise InvalidAmountError(str(amount), f"{field_name} must be > 0")
    return round_money(amount)


class ProjectService(BaseService[Project]):
    """Write-side service for projects and milestones."""

    def _get_project(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def create_project(
        self,
        creator_id: UUID,
        title: str,
        description: str | None,
        funding_target: Decimal | str | int,
    ) -> ProjectInfo:
        cleaned_title = _clean_title(title)
        target = _positive_amount(funding_target, "funding_target")
        if self.session.get(User, creator_id) is None:
            raise UserNotFoundError(str(creator_id))

        project = Project(
            creator_id=creator_id,
            title=cleaned_title,
            description=(description or "").strip(),
            funding_target=target,
            funded_amount=Decimal("0"),
            locked_amount=Decimal("0"),
            status=ProjectStatus.ACTIVE.value,
            created_at=self.clock.now(),
        )
        self.session.add(project)
        self.session.flush()

        logger.info(
            "project_created",
            extra={
                "project_id": str(project.id),
                "creator_id": str(creator_id),
                "funding_target": str(target),
            },
        )
        return project.to_dto()

    def create_milestone(
        self,
        project_id: UUID,
        title: str,
        description: str | None,
        amount_allocated: Decimal | str | int,
    ) -> MilestoneInfo:
        spec = MilestoneSpec(
            title=_clean_title(title),
            amount_allocated=_positive_amount(amount_allocated, "amount_allocated"),
            description=(description or "").strip(),
        )
        return self.create_milestones(project_id, [spec])[0]

    def create_milestones(
        self,
        project_id: UUID,
        specs: Sequence[MilestoneSpec],
    ) -> list[MilestoneInfo]:
        """
        Create milestones in input order.

        Creation timestamps are spaced one microsecond apart so that listings
        ordered by ``created_at`` preserve the input order.
        """
        if not specs:
            raise ValidationError("milestones", "at least one milestone is required")
        self._get_project(project_id)

        now = self.clock.now()
        milestones = [
            Milestone(
                project_id=project_id,
                title=_clean_title(spec.title),
                description=(spec.description or "").strip(),
                amount_allocated=_positive_amount(spec.amount_allocated, "amount_allocated"),
                status=MilestoneStatus.PENDING.value,
                created_at=now + timedelta(microseconds=index),
            )
            for index, spec in enumerate(specs)
        ]
        self.session.add_all(milestones)
        self.session.flush()

        with LogContext.bind(project_id=project_id):
            logger.info("milestones_created", extra={"count": len(milestones)})
        return [m.to_dto() for m in milestones]

    def update_project_status(
        self,
        project_id: UUID,
        status: ProjectStatus | str,
    ) -> ProjectInfo:
        try:
            new_status = ProjectStatus(status)
        except ValueError as exc:
            raise ValidationError(
                "status", f"must be one of {[s.value for s in ProjectStatus]}",
            ) from exc

        project = self._get_project(project_id)
        old_status = project.status
        project.status = new_status.value
        self.session.flush()

        logger.info(
            "project_status_changed",
            extra={
                "project_id": str(project_id),
                "from_status": old_status,
                "to_status": new_status.value,
            },
        )
        return project.to_dto()

    def get_project(self, project_id: UUID) -> ProjectInfo:
        return self._get_project(project_id).to_dto()

    def get_milestone(self, milestone_id: UUID) -> MilestoneInfo:
        milestone = self.session.get(Milestone, milestone_id)
        if milestone is None:
            raise MilestoneNotFoundError(str(milestone_id))
        return milestone.to_dto()

    def increment_funded_amount(
        self,
        project_id: UUID,
        amount: Decimal | str | int,
        lock: bool = True,
    ) -> None:
        """
        Atomically add ``amount`` to the project's funded amount.

        With ``lock`` the same statement adds it to the locked amount, the
        unreleased balance that bounds milestone releases and refunds.
        """
        value = _positive_amount(amount, "amount")
        values = {"funded_amount": Project.funded_amount + value}
        if lock:
            values["locked_amount"] = Project.locked_amount + value

        result = self.session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ProjectNotFoundError(str(project_id))
        # Identity-mapped projects would otherwise keep stale totals
        self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

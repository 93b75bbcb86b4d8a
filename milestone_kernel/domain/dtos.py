"""
Domain Data Transfer Objects.

Responsibility:
    Frozen, self-validating records passed between services, selectors and
    callers.  ORM models convert to these via ``to_dto()``; nothing outside
    the persistence layer handles live ORM instances.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Required identifiers and text fields are present.
    - Amounts are Decimal and in range (allocations/targets/transaction
      amounts > 0; funded and locked amounts >= 0).
    - Vote weights are integers >= 1.

Failure modes:
    - ValidationError / InvalidAmountError / InvalidWeightError at
      construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from milestone_kernel.domain.governance import (
    MilestoneStatus,
    ProjectStatus,
    TransactionType,
    VoteTally,
)
from milestone_kernel.exceptions import (
    InvalidAmountError,
    InvalidWeightError,
    ValidationError,
)


def _require(value: object, field_name: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field_name, "is required")


def _require_positive(amount: Decimal, field_name: str) -> None:
    if not isinstance(amount, Decimal):
        raise ValidationError(field_name, f"must be Decimal, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmountError(str(amount), f"{field_name} must be > 0")


def _require_non_negative(amount: Decimal, field_name: str) -> None:
    if not isinstance(amount, Decimal):
        raise ValidationError(field_name, f"must be Decimal, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidAmountError(str(amount), f"{field_name} must be >= 0")


def validate_weight(weight: object) -> int:
    """Return ``weight`` if it is an integer >= 1, else raise InvalidWeightError."""
    if isinstance(weight, bool) or not isinstance(weight, int) or weight < 1:
        raise InvalidWeightError(weight)
    return weight


@dataclass(frozen=True)
class UserInfo:
    """A wallet-identified user."""

    id: UUID
    wallet_address: str
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        _require(self.id, "id")
        _require(self.wallet_address, "wallet_address")


@dataclass(frozen=True)
class ProjectInfo:
    """A funding project and its denormalized totals."""

    id: UUID
    creator_id: UUID
    title: str
    description: str
    funding_target: Decimal
    funded_amount: Decimal
    locked_amount: Decimal
    status: ProjectStatus
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        _require(self.id, "id")
        _require(self.creator_id, "creator_id")
        _require(self.title, "title")
        _require_positive(self.funding_target, "funding_target")
        _require_non_negative(self.funded_amount, "funded_amount")
        _require_non_negative(self.locked_amount, "locked_amount")

    @property
    def progress_percent(self) -> int:
        """Funded share of the target, capped at 100."""
        pct = int(self.funded_amount * 100 / self.funding_target)
        return min(pct, 100)


@dataclass(frozen=True)
class MilestoneInfo:
    """A funding tranche awaiting governance approval."""

    id: UUID
    project_id: UUID
    title: str
    description: str
    amount_allocated: Decimal
    status: MilestoneStatus
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        _require(self.id, "id")
        _require(self.project_id, "project_id")
        _require(self.title, "title")
        _require_positive(self.amount_allocated, "amount_allocated")


@dataclass(frozen=True)
class MilestoneSpec:
    """Input for creating a milestone."""

    title: str
    amount_allocated: Decimal
    description: str = ""

    def __post_init__(self) -> None:
        _require(self.title, "title")
        _require_positive(self.amount_allocated, "amount_allocated")


@dataclass(frozen=True)
class VoteRecord:
    """An immutable weighted vote."""

    id: UUID
    milestone_id: UUID
    voter_id: UUID
    vote: bool
    voting_power: int
    created_at: datetime | None = None
    voter_wallet: str | None = None

    def __post_init__(self) -> None:
        _require(self.milestone_id, "milestone_id")
        _require(self.voter_id, "voter_id")
        if not isinstance(self.vote, bool):
            raise ValidationError("vote", "must be a boolean (True=yes, False=no)")
        validate_weight(self.voting_power)


@dataclass(frozen=True)
class TransactionRecord:
    """An append-only ledger transaction recorded against a project."""

    id: UUID
    project_id: UUID
    tx_hash: str
    amount: Decimal
    type: TransactionType
    milestone_id: UUID | None = None
    destination: str | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        _require(self.project_id, "project_id")
        _require(self.tx_hash, "tx_hash")
        _require_positive(self.amount, "amount")


@dataclass(frozen=True)
class MilestoneTransition:
    """Outcome of a lifecycle decision, reported back to the triggering caller."""

    milestone_id: UUID
    from_status: MilestoneStatus
    to_status: MilestoneStatus

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status


@dataclass(frozen=True)
class VoteResult:
    """Result of casting a vote."""

    vote: VoteRecord
    tally: VoteTally
    transition: MilestoneTransition
    remaining_balance: int

    @property
    def approved(self) -> bool:
        return self.tally.approved

    @property
    def yes_percent(self) -> int:
        return self.tally.yes_percent


@dataclass(frozen=True)
class ContributionResult:
    """Result of one contribution event (funding record + token credit)."""

    transaction: TransactionRecord
    tokens_minted: int
    token_balance: int
    token_category: str
    mint_simulated: bool


@dataclass(frozen=True)
class ReleaseResult:
    """Result of releasing a milestone's funds."""

    tx_hash: str
    transaction: TransactionRecord
    transition: MilestoneTransition
    locked_remaining: Decimal


@dataclass(frozen=True)
class FundingReconciliation:
    """Comparison of the cached funded amount against the transaction ledger."""

    project_id: UUID
    cached_funded_amount: Decimal
    ledger_funding_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached_funded_amount - self.ledger_funding_total

    @property
    def is_consistent(self) -> bool:
        return self.difference == 0


@dataclass(frozen=True)
class MilestoneView:
    """Milestone with its recomputed vote tally, for read-side listings."""

    milestone: MilestoneInfo
    tally: VoteTally


@dataclass(frozen=True)
class ProjectSummary:
    """Aggregated project view (counts and on-chain total)."""

    project: ProjectInfo
    creator_wallet: str
    milestone_count: int = 0
    approved_milestones: int = 0
    released_milestones: int = 0
    transaction_count: int = 0
    total_funded_onchain: Decimal = field(default_factory=lambda: Decimal("0"))

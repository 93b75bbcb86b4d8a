"""
Governance domain types (``milestone_kernel.domain.governance``).

Responsibility
--------------
Pure value objects and rules for milestone governance: lifecycle statuses and
the transition graph, weighted vote tallies with the strict-majority test,
and the contribution-to-token minting ratio.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and frozen dataclasses.  ZERO I/O.
No imports from ``db/``, ``models/``, ``services/`` or outer layers other
than the exception hierarchy.

Invariants enforced
-------------------
* Milestone status only moves forward along ``MILESTONE_TRANSITIONS``.
  ``released`` and ``rejected`` have no outgoing edges.
* Approval is a strict majority: ties never approve.
* Minting is floor-rounded per whole token unit; fractional units mint
  nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable

from milestone_kernel.exceptions import InvalidAmountError, ValidationError


# =========================================================================
# Statuses
# =========================================================================


class ProjectStatus(str, Enum):
    """Project lifecycle states."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MilestoneStatus(str, Enum):
    """Milestone governance lifecycle states."""

    PENDING = "pending"
    VOTING = "voting"
    APPROVED = "approved"
    RELEASED = "released"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    """Ledger transaction kinds recorded against a project."""

    FUNDING = "funding"
    RELEASE = "release"
    REFUND = "refund"


# A first vote that already clears the threshold goes straight to approved;
# the voting state is implied.
MILESTONE_TRANSITIONS: dict[MilestoneStatus, frozenset[MilestoneStatus]] = {
    MilestoneStatus.PENDING: frozenset({
        MilestoneStatus.VOTING,
        MilestoneStatus.APPROVED,
        MilestoneStatus.REJECTED,
    }),
    MilestoneStatus.VOTING: frozenset({
        MilestoneStatus.APPROVED,
        MilestoneStatus.REJECTED,
    }),
    MilestoneStatus.APPROVED: frozenset({
        MilestoneStatus.RELEASED,
    }),
    MilestoneStatus.RELEASED: frozenset(),
    MilestoneStatus.REJECTED: frozenset(),
}

# Without the approval latch a diluted majority drops back to voting.
LIVE_TALLY_TRANSITIONS: dict[MilestoneStatus, frozenset[MilestoneStatus]] = {
    **MILESTONE_TRANSITIONS,
    MilestoneStatus.APPROVED: frozenset({
        MilestoneStatus.RELEASED,
        MilestoneStatus.VOTING,
    }),
}

TERMINAL_MILESTONE_STATUSES: frozenset[MilestoneStatus] = frozenset({
    MilestoneStatus.RELEASED,
    MilestoneStatus.REJECTED,
})


def transitions_for(approval_latch: bool) -> dict[MilestoneStatus, frozenset[MilestoneStatus]]:
    """Return the transition graph in force for the given latch setting."""
    return MILESTONE_TRANSITIONS if approval_latch else LIVE_TALLY_TRANSITIONS


def can_transition(
    from_status: MilestoneStatus,
    to_status: MilestoneStatus,
    approval_latch: bool = True,
) -> bool:
    """True if ``from_status -> to_status`` is an edge of the lifecycle graph."""
    return to_status in transitions_for(approval_latch).get(from_status, frozenset())


# =========================================================================
# Parameters
# =========================================================================


@dataclass(frozen=True)
class GovernanceParameters:
    """
    Tunable governance constants.

    Built from configuration by ``milestone_config.bridges``; services fall
    back to these defaults when none are injected.
    """

    token_unit: Decimal = Decimal("0.001")
    tokens_per_unit: int = 100
    approval_threshold: Decimal = Decimal("0.5")
    approval_latch: bool = True
    release_tolerance: Decimal = Decimal("0.0001")

    def __post_init__(self) -> None:
        if self.token_unit <= 0:
            raise ValidationError("token_unit", "must be > 0")
        if self.tokens_per_unit < 1:
            raise ValidationError("tokens_per_unit", "must be >= 1")
        if not Decimal("0") <= self.approval_threshold < Decimal("1"):
            raise ValidationError("approval_threshold", "must be in [0, 1)")
        if self.release_tolerance < 0:
            raise ValidationError("release_tolerance", "must be >= 0")


DEFAULT_PARAMETERS = GovernanceParameters()


# =========================================================================
# Tally
# =========================================================================


@dataclass(frozen=True)
class VoteTally:
    """
    Weighted tally of a milestone's votes.

    Always recomputed from stored votes; never cached as authoritative state.
    """

    yes_weight: int = 0
    no_weight: int = 0
    approval_threshold: Decimal = DEFAULT_PARAMETERS.approval_threshold

    @property
    def total(self) -> int:
        return self.yes_weight + self.no_weight

    @property
    def approved(self) -> bool:
        """Strict majority of cast weight in favour; ties do not approve."""
        total = self.total
        return total > 0 and Decimal(self.yes_weight) > Decimal(total) * self.approval_threshold

    @property
    def yes_percent(self) -> int:
        """Share of yes weight rounded half-up to a whole percent (0 if no votes)."""
        total = self.total
        if total == 0:
            return 0
        share = Decimal(self.yes_weight) * 100 / Decimal(total)
        return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def as_dict(self) -> dict[str, int | bool]:
        return {
            "yes_weight": self.yes_weight,
            "no_weight": self.no_weight,
            "total": self.total,
            "approved": self.approved,
            "yes_percent": self.yes_percent,
        }


def tally_votes(
    votes: Iterable[tuple[bool, int]],
    approval_threshold: Decimal = DEFAULT_PARAMETERS.approval_threshold,
) -> VoteTally:
    """Build a tally from ``(direction, weight)`` pairs."""
    yes = 0
    no = 0
    for direction, weight in votes:
        if direction:
            yes += weight
        else:
            no += weight
    return VoteTally(yes_weight=yes, no_weight=no, approval_threshold=approval_threshold)


# =========================================================================
# Minting
# =========================================================================


def tokens_for_contribution(
    contributed_amount: Decimal,
    params: GovernanceParameters = DEFAULT_PARAMETERS,
) -> int:
    """
    Governance tokens minted for a contribution.

    ``floor(contributed_amount / token_unit) * tokens_per_unit``

    Raises:
        InvalidAmountError: if the contribution is non-positive or mints
            less than one token.
    """
    if contributed_amount <= 0:
        raise InvalidAmountError(str(contributed_amount), "must be > 0")
    whole_units = (contributed_amount / params.token_unit).to_integral_value(
        rounding=ROUND_FLOOR
    )
    minted = int(whole_units) * params.tokens_per_unit
    if minted < 1:
        raise InvalidAmountError(
            str(contributed_amount),
            f"contribute at least {params.token_unit} to receive governance tokens",
        )
    return minted

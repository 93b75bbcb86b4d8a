"""Tests for domain DTO validation."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from milestone_kernel.domain.dtos import (
    FundingReconciliation,
    MilestoneInfo,
    MilestoneSpec,
    MilestoneTransition,
    ProjectInfo,
    TransactionRecord,
    VoteRecord,
    validate_weight,
)
from milestone_kernel.domain.governance import (
    MilestoneStatus,
    ProjectStatus,
    TransactionType,
)
from milestone_kernel.exceptions import (
    InvalidAmountError,
    InvalidWeightError,
    ValidationError,
)


def _project(**overrides) -> ProjectInfo:
    values = dict(
        id=uuid4(),
        creator_id=uuid4(),
        title="Community Garden",
        description="",
        funding_target=Decimal("1.0"),
        funded_amount=Decimal("0"),
        locked_amount=Decimal("0"),
        status=ProjectStatus.ACTIVE,
    )
    values.update(overrides)
    return ProjectInfo(**values)


class TestValidateWeight:

    @pytest.mark.parametrize("weight", [1, 60, 10**9])
    def test_accepts_positive_integers(self, weight):
        assert validate_weight(weight) == weight

    @pytest.mark.parametrize("weight", [0, -5, 1.5, "10", None, True])
    def test_rejects_everything_else(self, weight):
        with pytest.raises(InvalidWeightError) as exc_info:
            validate_weight(weight)
        assert exc_info.value.code == "INVALID_WEIGHT"


class TestProjectInfo:

    def test_valid(self):
        info = _project(funded_amount=Decimal("0.25"))
        assert info.progress_percent == 25

    def test_progress_capped_at_100(self):
        assert _project(funded_amount=Decimal("3")).progress_percent == 100

    def test_non_positive_target(self):
        with pytest.raises(InvalidAmountError):
            _project(funding_target=Decimal("0"))

    def test_negative_locked_amount(self):
        with pytest.raises(InvalidAmountError):
            _project(locked_amount=Decimal("-0.01"))

    def test_float_amount_rejected(self):
        with pytest.raises(ValidationError):
            _project(funding_target=1.0)

    def test_blank_title(self):
        with pytest.raises(ValidationError):
            _project(title="   ")


class TestMilestoneDtos:

    def test_spec_requires_positive_allocation(self):
        with pytest.raises(InvalidAmountError):
            MilestoneSpec(title="Build", amount_allocated=Decimal("0"))

    def test_spec_requires_title(self):
        with pytest.raises(ValidationError):
            MilestoneSpec(title="", amount_allocated=Decimal("0.01"))

    def test_info(self):
        info = MilestoneInfo(
            id=uuid4(),
            project_id=uuid4(),
            title="Build",
            description="",
            amount_allocated=Decimal("0.01"),
            status=MilestoneStatus.PENDING,
        )
        assert info.status is MilestoneStatus.PENDING

    def test_transition_changed(self):
        mid = uuid4()
        assert MilestoneTransition(mid, MilestoneStatus.PENDING, MilestoneStatus.VOTING).changed
        assert not MilestoneTransition(mid, MilestoneStatus.VOTING, MilestoneStatus.VOTING).changed


class TestVoteRecord:

    def test_direction_must_be_bool(self):
        with pytest.raises(ValidationError):
            VoteRecord(id=uuid4(), milestone_id=uuid4(), voter_id=uuid4(), vote=1, voting_power=5)

    def test_weight_must_be_positive(self):
        with pytest.raises(InvalidWeightError):
            VoteRecord(id=uuid4(), milestone_id=uuid4(), voter_id=uuid4(), vote=True, voting_power=0)


class TestTransactionRecord:

    def test_valid(self):
        record = TransactionRecord(
            id=uuid4(),
            project_id=uuid4(),
            tx_hash="ab" * 32,
            amount=Decimal("0.01"),
            type=TransactionType.FUNDING,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        assert record.milestone_id is None

    def test_requires_hash(self):
        with pytest.raises(ValidationError):
            TransactionRecord(
                id=uuid4(),
                project_id=uuid4(),
                tx_hash="",
                amount=Decimal("0.01"),
                type=TransactionType.FUNDING,
            )


class TestFundingReconciliation:

    def test_consistent(self):
        rec = FundingReconciliation(uuid4(), Decimal("0.05"), Decimal("0.05"))
        assert rec.is_consistent
        assert rec.difference == 0

    def test_drift(self):
        rec = FundingReconciliation(uuid4(), Decimal("0.06"), Decimal("0.05"))
        assert not rec.is_consistent
        assert rec.difference == Decimal("0.01")

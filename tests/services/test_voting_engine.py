"""
Tests for VotingEngine.

Covers:
- Weighted tally and approval (60 yes / 40 no approves at 60%)
- Insufficient balance leaves balance and votes untouched
- One vote per voter per milestone, enforced by the store
- Approval latch versus live tally
- Votes on released/rejected milestones
- has_voted as a display-only check
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from milestone_kernel.domain.governance import MilestoneStatus
from milestone_kernel.exceptions import (
    DuplicateVoteError,
    InsufficientBalanceError,
    InvalidWeightError,
    MilestoneNotFoundError,
    UserNotFoundError,
    ValidationError,
    VotingClosedError,
)
from milestone_kernel.models.milestone import Milestone
from milestone_kernel.models.vote import Vote
from milestone_kernel.services.voting_engine import VotingEngine


def _vote_count(session, milestone_id) -> int:
    return session.execute(
        select(func.count()).select_from(Vote).where(Vote.milestone_id == milestone_id)
    ).scalar_one()


class TestCastVote:

    def test_weighted_majority_approves(self, voting_engine, milestone, create_voter):
        alice = create_voter(100)
        bob = create_voter(100)

        first = voting_engine.cast_vote(milestone.id, alice.id, True, 60)
        second = voting_engine.cast_vote(milestone.id, bob.id, False, 40)

        assert second.tally.total == 100
        assert second.yes_percent == 60
        assert second.approved is True
        assert first.transition.to_status == MilestoneStatus.APPROVED
        assert second.transition.to_status == MilestoneStatus.APPROVED
        assert not second.transition.changed

    def test_spends_weight(self, voting_engine, token_service, milestone, create_voter):
        voter = create_voter(100)
        result = voting_engine.cast_vote(milestone.id, voter.id, True, 60)

        assert result.remaining_balance == 40
        assert token_service.balance_of(voter.id) == 40
        assert result.vote.voting_power == 60
        assert result.vote.vote is True

    def test_first_opposing_vote_opens_voting(self, voting_engine, milestone, create_voter):
        voter = create_voter(10)
        result = voting_engine.cast_vote(milestone.id, voter.id, False, 10)
        assert result.transition.from_status == MilestoneStatus.PENDING
        assert result.transition.to_status == MilestoneStatus.VOTING

    def test_tie_does_not_approve(self, voting_engine, milestone, create_voter):
        voting_engine.cast_vote(milestone.id, create_voter(50).id, True, 50)
        result = voting_engine.cast_vote(milestone.id, create_voter(50).id, False, 50)
        # first vote approved it; the latch keeps it approved
        assert result.tally.approved is False
        assert result.transition.to_status == MilestoneStatus.APPROVED

    def test_tie_from_voting_stays_voting(self, voting_engine, milestone, create_voter):
        voting_engine.cast_vote(milestone.id, create_voter(50).id, False, 50)
        result = voting_engine.cast_vote(milestone.id, create_voter(50).id, True, 50)
        assert result.yes_percent == 50
        assert result.transition.to_status == MilestoneStatus.VOTING

    def test_insufficient_balance(self, session, voting_engine, token_service, milestone, create_voter):
        voter = create_voter(50)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            voting_engine.cast_vote(milestone.id, voter.id, True, 60)

        assert exc_info.value.available == 50
        assert token_service.balance_of(voter.id) == 50
        assert _vote_count(session, milestone.id) == 0

    def test_duplicate_vote(self, session, voting_engine, token_service, milestone, create_voter):
        voter = create_voter(100)
        voting_engine.cast_vote(milestone.id, voter.id, True, 10)

        with pytest.raises(DuplicateVoteError) as exc_info:
            voting_engine.cast_vote(milestone.id, voter.id, False, 5)

        assert exc_info.value.code == "DUPLICATE_VOTE"
        assert token_service.balance_of(voter.id) == 90
        assert _vote_count(session, milestone.id) == 1
        assert voting_engine.tally_of(milestone.id).yes_weight == 10

    def test_duplicate_vote_with_empty_balance(self, session, voting_engine, token_service, milestone, create_voter):
        voter = create_voter(100)
        voting_engine.cast_vote(milestone.id, voter.id, True, 100)

        with pytest.raises(DuplicateVoteError):
            voting_engine.cast_vote(milestone.id, voter.id, True, 1)

        assert token_service.balance_of(voter.id) == 0
        assert _vote_count(session, milestone.id) == 1

    def test_same_voter_different_milestones(self, voting_engine, create_milestones, create_voter):
        first, second = create_milestones("0.01", "0.02")
        voter = create_voter(100)
        voting_engine.cast_vote(first.id, voter.id, True, 30)
        result = voting_engine.cast_vote(second.id, voter.id, True, 30)
        assert result.remaining_balance == 40

    @pytest.mark.parametrize("weight", [0, -3, 1.5, True])
    def test_invalid_weight(self, voting_engine, milestone, create_voter, weight):
        voter = create_voter(10)
        with pytest.raises(InvalidWeightError):
            voting_engine.cast_vote(milestone.id, voter.id, True, weight)

    def test_direction_must_be_bool(self, voting_engine, milestone, create_voter):
        voter = create_voter(10)
        with pytest.raises(ValidationError):
            voting_engine.cast_vote(milestone.id, voter.id, "yes", 1)

    def test_unknown_milestone(self, voting_engine, create_voter):
        with pytest.raises(MilestoneNotFoundError):
            voting_engine.cast_vote(uuid4(), create_voter(10).id, True, 1)

    def test_unknown_voter(self, voting_engine, milestone):
        with pytest.raises(UserNotFoundError):
            voting_engine.cast_vote(milestone.id, uuid4(), True, 1)

    def test_logs_vote_with_context(self, voting_engine, milestone, create_voter, captured_logs):
        voter = create_voter(100)
        voting_engine.cast_vote(milestone.id, voter.id, True, 60)

        records = [r for r in captured_logs() if r["message"] == "vote_cast"]
        assert len(records) == 1
        assert records[0]["milestone_id"] == str(milestone.id)
        assert records[0]["actor_id"] == str(voter.id)
        assert records[0]["weight"] == 60
        assert records[0]["approved"] is True


class TestVotingClosed:

    def test_released_milestone(self, session, voting_engine, milestone, create_voter):
        session.execute(
            update(Milestone)
            .where(Milestone.id == milestone.id)
            .values(status=MilestoneStatus.RELEASED.value)
            .execution_options(synchronize_session=False)
        )
        voter = create_voter(10)
        with pytest.raises(VotingClosedError) as exc_info:
            voting_engine.cast_vote(milestone.id, voter.id, True, 5)
        assert exc_info.value.status == "released"

    def test_rejected_milestone(self, voting_engine, lifecycle, token_service, milestone, creator, create_voter):
        lifecycle.reject(milestone.id, creator.id)
        voter = create_voter(10)
        with pytest.raises(VotingClosedError):
            voting_engine.cast_vote(milestone.id, voter.id, True, 5)
        assert token_service.balance_of(voter.id) == 10


class TestApprovalLatch:

    def test_latched_approval_survives_dilution(self, voting_engine, milestone, create_voter):
        voting_engine.cast_vote(milestone.id, create_voter(100).id, True, 60)
        result = voting_engine.cast_vote(milestone.id, create_voter(200).id, False, 200)

        assert result.tally.approved is False
        assert result.transition.to_status == MilestoneStatus.APPROVED

    def test_live_tally_reverts_to_voting(
        self, session, deterministic_clock, live_tally_parameters, milestone, create_voter,
    ):
        engine = VotingEngine(session, deterministic_clock, live_tally_parameters)
        engine.cast_vote(milestone.id, create_voter(100).id, True, 60)
        result = engine.cast_vote(milestone.id, create_voter(200).id, False, 200)

        assert result.transition.from_status == MilestoneStatus.APPROVED
        assert result.transition.to_status == MilestoneStatus.VOTING

        result = engine.cast_vote(milestone.id, create_voter(300).id, True, 300)
        assert result.transition.to_status == MilestoneStatus.APPROVED


class TestHasVoted:

    def test_after_vote(self, voting_engine, milestone, create_voter):
        voter = create_voter(10)
        assert voting_engine.has_voted(milestone.id, voter.id) is False
        voting_engine.cast_vote(milestone.id, voter.id, True, 1)
        assert voting_engine.has_voted(milestone.id, voter.id) is True

    @pytest.mark.parametrize("missing", ["milestone", "voter"])
    def test_missing_inputs(self, voting_engine, milestone, create_voter, missing):
        voter = create_voter(10)
        if missing == "milestone":
            assert voting_engine.has_voted(None, voter.id) is False
        else:
            assert voting_engine.has_voted(milestone.id, None) is False

    def test_store_failure_returns_false(self, voting_engine, milestone, monkeypatch, captured_logs):
        def _boom(*args, **kwargs):
            raise OperationalError("SELECT EXISTS", {}, Exception("connection lost"))

        monkeypatch.setattr(voting_engine, "_vote_exists", _boom)
        assert voting_engine.has_voted(milestone.id, uuid4()) is False
        assert any(r["message"] == "has_voted_check_failed" for r in captured_logs())

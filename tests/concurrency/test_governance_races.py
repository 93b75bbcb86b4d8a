"""
True concurrency tests for the governance kernel.

Each thread opens its own session from the committed session factory and
commits (or rolls back) independently.  A Barrier releases the threads
together so the store, not the test, decides the interleaving.

Expected behaviour:
- Concurrent contributions to one project never lose an increment
- Concurrent duplicate votes: exactly one is stored, the rest fail
  DuplicateVoteError, and the weight is spent once
- Concurrent spends never overdraw a token account
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from milestone_kernel.domain.dtos import MilestoneSpec
from milestone_kernel.exceptions import DuplicateVoteError, InsufficientBalanceError
from milestone_kernel.models.token_account import GovernanceTokenAccount
from milestone_kernel.models.vote import Vote
from milestone_kernel.services.funding_reconciler import FundingLedgerReconciler
from milestone_kernel.services.project_service import ProjectService
from milestone_kernel.services.user_service import UserService
from milestone_kernel.services.voting_engine import VotingEngine

pytestmark = pytest.mark.slow_locks


def _run(session_factory, work):
    """Run ``work(session)`` in its own transaction; commit on success."""
    session = session_factory()
    try:
        result = work(session)
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _setup_project(session_factory, milestone_count: int = 1):
    def work(session):
        creator = UserService(session).upsert_user(f"bitcoincash:q{uuid4().hex}")
        projects = ProjectService(session)
        project = projects.create_project(creator.id, "Race Garden", "", "1")
        milestones = projects.create_milestones(
            project.id,
            [MilestoneSpec(f"M{i}", Decimal("0.01")) for i in range(milestone_count)],
        )
        return project, milestones

    return _run(session_factory, work)


def _setup_voter(session_factory, balance: int):
    def work(session):
        voter = UserService(session).upsert_user(f"bitcoincash:q{uuid4().hex}")
        session.add(
            GovernanceTokenAccount(
                voter_id=voter.id, balance=balance, total_minted=balance, total_spent=0,
            )
        )
        session.flush()
        return voter

    return _run(session_factory, work)


class TestConcurrentContributions:

    @pytest.mark.parametrize("num_threads", [2, 8])
    def test_no_lost_increments(self, committed_session_factory, num_threads):
        project, _ = _setup_project(committed_session_factory)
        barrier = Barrier(num_threads, timeout=30)

        def contribute(_):
            barrier.wait()
            return _run(
                committed_session_factory,
                lambda s: FundingLedgerReconciler(s).record_contribution(
                    project.id, uuid4().hex * 2, Decimal("0.01"),
                ),
            )

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            results = list(executor.map(contribute, range(num_threads)))

        assert len(results) == num_threads
        expected = Decimal("0.01") * num_threads

        def check(session):
            info = ProjectService(session).get_project(project.id)
            reconciliation = FundingLedgerReconciler(session).verify_funded_amount(project.id)
            return info, reconciliation

        info, reconciliation = _run(committed_session_factory, check)
        assert info.funded_amount == expected
        assert info.locked_amount == expected
        assert reconciliation.is_consistent


class TestConcurrentVotes:

    def test_duplicate_votes_exactly_one_wins(self, committed_session_factory):
        num_threads = 6
        _, (milestone,) = _setup_project(committed_session_factory)
        voter = _setup_voter(committed_session_factory, 100)
        barrier = Barrier(num_threads, timeout=30)

        def vote(_):
            barrier.wait()
            try:
                _run(
                    committed_session_factory,
                    lambda s: VotingEngine(s).cast_vote(milestone.id, voter.id, True, 10),
                )
                return "ok"
            except DuplicateVoteError:
                return "duplicate"

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            outcomes = list(executor.map(vote, range(num_threads)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == num_threads - 1

        def check(session):
            votes = session.execute(
                select(func.count()).select_from(Vote).where(Vote.milestone_id == milestone.id)
            ).scalar_one()
            balance = session.execute(
                select(GovernanceTokenAccount.balance).where(
                    GovernanceTokenAccount.voter_id == voter.id
                )
            ).scalar_one()
            return votes, balance

        assert _run(committed_session_factory, check) == (1, 90)

    def test_concurrent_spends_never_overdraw(self, committed_session_factory):
        num_threads = 5
        _, milestones = _setup_project(committed_session_factory, milestone_count=num_threads)
        voter = _setup_voter(committed_session_factory, 100)
        barrier = Barrier(num_threads, timeout=30)

        def vote(index):
            barrier.wait()
            try:
                _run(
                    committed_session_factory,
                    lambda s: VotingEngine(s).cast_vote(milestones[index].id, voter.id, True, 30),
                )
                return "ok"
            except InsufficientBalanceError:
                return "insufficient"

        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            outcomes = list(executor.map(vote, range(num_threads)))

        assert outcomes.count("ok") == 3
        assert outcomes.count("insufficient") == 2

        def check(session):
            account = session.execute(
                select(GovernanceTokenAccount).where(GovernanceTokenAccount.voter_id == voter.id)
            ).scalar_one()
            return account.balance, account.total_spent

        assert _run(committed_session_factory, check) == (10, 90)

#!/usr/bin/env python3
"""
Walk one project through the full milestone governance lifecycle.

Creates a creator and two backers, records their contributions (minting
governance tokens), casts weighted votes until the first milestone is
approved, releases its funds through the simulated ledger, and prints the
resulting project summary and funding reconciliation.

Usage:
    python3 scripts/demo_governance.py
    python3 scripts/demo_governance.py --db /tmp/demo.db --no-latch
    python3 scripts/demo_governance.py --config milestone_config/sets/default.yaml
    MILESTONE_DATABASE_URL=postgresql://localhost/milestone python3 scripts/demo_governance.py
"""

import argparse
import logging
import os
import sys
import tempfile
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _fake_tx_hash() -> str:
    return uuid4().hex + uuid4().hex


def _print_header(title: str) -> None:
    print()
    print("=" * 64)
    print(f"  {title}")
    print("=" * 64)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run the milestone governance lifecycle against a fresh database.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=(
            "SQLite database file (default: MILESTONE_DATABASE_URL when set, "
            "otherwise a fresh temporary file)"
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Governance configuration YAML (default: milestone_config/sets/default.yaml)",
    )
    parser.add_argument(
        "--no-latch",
        action="store_true",
        help="Let a diluted majority move an approved milestone back to voting",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print the kernel's structured JSON log lines at the configured level",
    )
    args = parser.parse_args()

    from dataclasses import replace

    from milestone_config import DATABASE_URL_ENV, get_active_config
    from milestone_config.bridges import build_governance_parameters, init_engine_from_config
    from milestone_kernel.db.engine import create_tables, session_scope
    from milestone_kernel.db.immutability import register_immutability_listeners
    from milestone_kernel.domain.dtos import MilestoneSpec
    from milestone_kernel.exceptions import DuplicateVoteError, NotApprovedError
    from milestone_kernel.logging_config import configure_logging
    from milestone_kernel.selectors.project_selector import ProjectSelector
    from milestone_kernel.services import (
        ContributionService,
        FundingLedgerReconciler,
        ProjectService,
        SimulatedLedgerService,
        UserService,
        VotingEngine,
    )

    config = get_active_config(args.config)
    params = build_governance_parameters(config)
    if args.no_latch:
        params = replace(params, approval_latch=False)

    configure_logging(level=config.log_level if args.verbose else logging.CRITICAL)

    if args.db or not os.environ.get(DATABASE_URL_ENV):
        db_path = args.db or Path(tempfile.mkdtemp(prefix="milestone-demo-")) / "demo.db"
        config = replace(config, database=replace(config.database, url=f"sqlite:///{db_path}"))
    init_engine_from_config(config)
    create_tables()
    register_immutability_listeners()

    ledger = SimulatedLedgerService(source_balance=Decimal("10"))

    _print_header("Setup")
    with session_scope() as session:
        users = UserService(session)
        creator = users.upsert_user("bitcoincash:qcreator0000000000000000000000000000")
        alice = users.upsert_user("bitcoincash:qalice000000000000000000000000000000")
        bob = users.upsert_user("bitcoincash:qbob00000000000000000000000000000000")

        projects = ProjectService(session, parameters=params)
        project = projects.create_project(
            creator.id, "Community Garden", "Raised beds and irrigation", "0.05",
        )
        milestones = projects.create_milestones(
            project.id,
            [
                MilestoneSpec("Site preparation", Decimal("0.01"), "Clear and level"),
                MilestoneSpec("Irrigation", Decimal("0.02"), "Drip lines"),
            ],
        )
    print(f"  project   {project.id}  target={project.funding_target}")
    for m in milestones:
        print(f"  milestone {m.id}  {m.title!r} allocated={m.amount_allocated}")

    _print_header("Contributions")
    with session_scope() as session:
        contributions = ContributionService(session, ledger, parameters=params)
        for backer, amount in ((alice, "0.006"), (bob, "0.004")):
            result = contributions.contribute(project.id, backer.id, amount, _fake_tx_hash())
            print(
                f"  {backer.wallet_address[:20]}... contributed {amount} "
                f"-> {result.tokens_minted} tokens (balance {result.token_balance})"
            )
        contributions.contribute(project.id, creator.id, "0.02", _fake_tx_hash())

    first = milestones[0]

    _print_header("Release before approval")
    with session_scope() as session:
        reconciler = FundingLedgerReconciler(session, ledger=ledger, parameters=params)
        try:
            reconciler.record_release(project.id, first.id, "bitcoincash:qcreator", "0.01")
        except NotApprovedError as exc:
            print(f"  rejected as expected: {exc.code}")

    _print_header("Voting")
    with session_scope() as session:
        voting = VotingEngine(session, parameters=params)
        for voter, direction, weight in ((alice, True, 60), (bob, False, 40)):
            result = voting.cast_vote(first.id, voter.id, direction, weight)
            print(
                f"  {'YES' if direction else 'NO '} x{weight:<3} -> "
                f"yes={result.tally.yes_percent}% status={result.transition.to_status.value}"
            )
    with session_scope() as session:
        try:
            VotingEngine(session, parameters=params).cast_vote(first.id, alice.id, True, 1)
        except DuplicateVoteError as exc:
            print(f"  second vote rejected: {exc.code}")

    _print_header("Release")
    with session_scope() as session:
        reconciler = FundingLedgerReconciler(session, ledger=ledger, parameters=params)
        release = reconciler.record_release(
            project.id, first.id, creator.wallet_address, first.amount_allocated,
        )
    print(f"  tx {release.tx_hash}")
    print(f"  milestone now {release.transition.to_status.value}")
    print(f"  locked remaining {release.locked_remaining}")

    _print_header("Summary")
    with session_scope() as session:
        summary = ProjectSelector(session, params).project_summary(project.id)
        reconciliation = FundingLedgerReconciler(session, parameters=params).verify_funded_amount(
            project.id,
        )
        views = ProjectSelector(session, params).milestones_with_tallies(project.id)
    print(f"  funded {summary.project.funded_amount} of {summary.project.funding_target}")
    print(f"  milestones {summary.milestone_count}  released {summary.released_milestones}")
    print(f"  transactions {summary.transaction_count}")
    print(f"  ledger consistent: {reconciliation.is_consistent}")
    for view in views:
        print(
            f"  {view.milestone.title:<20} {view.milestone.status.value:<9} "
            f"yes={view.tally.yes_weight} no={view.tally.no_weight}"
        )
    print(f"\n  database: {config.database.url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

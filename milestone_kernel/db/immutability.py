"""
ORM-Level Immutability Enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent for
objects tracked by a session.  The listeners registered here intercept those
events and raise ImmutabilityViolationError, aborting the flush before the
database is touched:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity          | Rule
----------------|--------------------------------------------------------
Vote            | Append-only: never updated or deleted through the ORM
Transaction     | Append-only: never updated or deleted through the ORM
Milestone       | status edits must follow the lifecycle graph;
                | released/rejected milestones are frozen
Project         | funded_amount/locked_amount are never assigned after insert

Single-statement SQL updates (``session.execute(update(...))``) do not fire
mapper events.  The services use them deliberately for the atomic increments,
the conditional token spend and the conditional status transitions, which
enforce the same rules in their WHERE clauses.  Store-level ON DELETE CASCADE
is likewise invisible here because relationships use ``passive_deletes="all"``.

Usage:

    from milestone_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must deliberately violate a rule may call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from milestone_kernel.domain.governance import (
    TERMINAL_MILESTONE_STATUSES,
    MilestoneStatus,
    can_transition,
)
from milestone_kernel.exceptions import ImmutabilityViolationError
from milestone_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_PROJECT_CACHE_FIELDS = ("funded_amount", "locked_amount")


def _blocked(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _check_vote_update(mapper, connection, target):
    """Votes are immutable once recorded."""
    changed = _changed_fields(target)
    if changed:
        _blocked(
            "Vote", target, "UPDATE",
            f"Votes are immutable -- cannot modify '{changed[0]}'",
            field=changed[0],
        )


def _check_vote_delete(mapper, connection, target):
    _blocked("Vote", target, "DELETE", "Votes are immutable -- cannot delete")


def _check_transaction_update(mapper, connection, target):
    """Ledger transactions are append-only."""
    changed = _changed_fields(target)
    if changed:
        _blocked(
            "Transaction", target, "UPDATE",
            f"Ledger transactions are append-only -- cannot modify '{changed[0]}'",
            field=changed[0],
        )


def _check_transaction_delete(mapper, connection, target):
    _blocked(
        "Transaction", target, "DELETE",
        "Ledger transactions are append-only -- cannot delete",
    )


def _check_milestone_update(mapper, connection, target):
    """
    Guard milestone status edits made through the ORM.

    The old status comes from attribute history.  A change must be an edge of
    the permissive (unlatched) graph; the latch itself is a service-level
    setting enforced by MilestoneLifecycleManager.  A milestone that was
    already terminal rejects every field change.
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        old_status = MilestoneStatus(status_history.deleted[0])
        new_status = MilestoneStatus(target.status)
        if old_status in TERMINAL_MILESTONE_STATUSES or not can_transition(
            old_status, new_status, approval_latch=False,
        ):
            _blocked(
                "Milestone", target, "UPDATE",
                f"Illegal status change {old_status.value} -> {new_status.value}",
                field="status",
            )
        return

    if MilestoneStatus(target.status) in TERMINAL_MILESTONE_STATUSES:
        changed = _changed_fields(target)
        if changed:
            _blocked(
                "Milestone", target, "UPDATE",
                f"Cannot modify '{changed[0]}' on a {target.status} milestone",
                field=changed[0],
            )


def _check_project_update(mapper, connection, target):
    """Cached totals only move through atomic increments."""
    for field in _PROJECT_CACHE_FIELDS:
        if get_history(target, field).has_changes():
            _blocked(
                "Project", target, "UPDATE",
                f"'{field}' is maintained by atomic increments only",
                field=field,
            )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after the models are importable and before any database
    operations begin.  Registering twice is harmless.
    """
    from milestone_kernel.models.milestone import Milestone
    from milestone_kernel.models.project import Project
    from milestone_kernel.models.transaction import Transaction
    from milestone_kernel.models.vote import Vote

    for target, event_name, listener_fn in (
        (Vote, "before_update", _check_vote_update),
        (Vote, "before_delete", _check_vote_delete),
        (Transaction, "before_update", _check_transaction_update),
        (Transaction, "before_delete", _check_transaction_delete),
        (Milestone, "before_update", _check_milestone_update),
        (Project, "before_update", _check_project_update),
    ):
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    from milestone_kernel.models.milestone import Milestone
    from milestone_kernel.models.project import Project
    from milestone_kernel.models.transaction import Transaction
    from milestone_kernel.models.vote import Vote

    _safe_remove_listener(Vote, "before_update", _check_vote_update)
    _safe_remove_listener(Vote, "before_delete", _check_vote_delete)
    _safe_remove_listener(Transaction, "before_update", _check_transaction_update)
    _safe_remove_listener(Transaction, "before_delete", _check_transaction_delete)
    _safe_remove_listener(Milestone, "before_update", _check_milestone_update)
    _safe_remove_listener(Project, "before_update", _check_project_update)

"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    write-side service.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back the outer transaction themselves.  The
    caller (``session_scope()``, a request handler or the test harness) owns
    commit/rollback, so a contribution's funding record and token credit, or
    a release's ledger record and status change, land together or not at all.
    Services may open and close savepoints (``begin_nested()``) to isolate a
    single statement that is expected to fail.

Failure modes:
    - If a subclass calls ``session.commit()``, multi-step operations lose
      their atomicity.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from milestone_kernel.db.base import Base
from milestone_kernel.domain.clock import Clock, SystemClock
from milestone_kernel.domain.governance import DEFAULT_PARAMETERS, GovernanceParameters

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.
        Time comes from the injected ``Clock``; tunable constants come from
        the injected ``GovernanceParameters``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing queries -- those belong in
          ``milestone_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        parameters: GovernanceParameters | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.parameters = parameters or DEFAULT_PARAMETERS

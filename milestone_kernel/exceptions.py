"""
Typed Exception Hierarchy for the Milestone Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Governance and fund-accounting errors must be handled precisely. A caller that
has to tell "already voted" apart from "not enough tokens" should never parse
a message string:

    try:
        engine.cast_vote(milestone_id, voter_id, True, 60)
    except Exception as e:
        if "already" in str(e):  # FRAGILE
            ...

Instead every error has a TYPED class, a machine-readable CODE and structured
attributes:

    try:
        engine.cast_vote(milestone_id, voter_id, True, 60)
    except DuplicateVoteError as e:
        api_response(code=e.code, milestone=e.milestone_id)
    except InsufficientBalanceError as e:
        api_response(code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MilestoneKernelError (base)
    |
    +-- ValidationError (also ValueError)
    |   +-- InvalidAmountError
    |   +-- InvalidWeightError
    |
    +-- NotFoundError
    |   +-- UserNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- MilestoneNotFoundError
    |
    +-- GovernanceError
    |   +-- DuplicateVoteError
    |   +-- VotingClosedError
    |   +-- InvalidMilestoneTransitionError
    |   +-- NotApprovedError
    |   +-- NotProjectCreatorError
    |
    +-- FundsError
    |   +-- InsufficientBalanceError
    |   +-- InsufficientLockedFundsError
    |   +-- AllocationExceededError
    |
    +-- ExternalServiceError
    |   +-- LedgerServiceError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|--------------------------------------
Validation   | VALIDATION_ERROR              | Missing/invalid required field
             | INVALID_AMOUNT                | Amount <= 0 or mints < 1 token
             | INVALID_WEIGHT                | Vote weight < 1 or not an integer
-------------|-------------------------------|--------------------------------------
Not found    | USER_NOT_FOUND                | Unknown user id
             | PROJECT_NOT_FOUND             | Unknown project id
             | MILESTONE_NOT_FOUND           | Unknown milestone id (or wrong project)
-------------|-------------------------------|--------------------------------------
Governance   | DUPLICATE_VOTE                | (milestone, voter) already voted
             | VOTING_CLOSED                 | Vote on released/rejected milestone
             | INVALID_MILESTONE_TRANSITION  | Status edge not in transition graph
             | NOT_APPROVED                  | Release before approval
             | NOT_PROJECT_CREATOR           | Creator-only action by someone else
-------------|-------------------------------|--------------------------------------
Funds        | INSUFFICIENT_BALANCE          | Vote weight exceeds token balance
             | INSUFFICIENT_LOCKED_FUNDS     | Release/refund exceeds locked funds
             | ALLOCATION_EXCEEDED           | Release exceeds milestone allocation
-------------|-------------------------------|--------------------------------------
External     | EXTERNAL_SERVICE_ERROR        | Store or ledger failure
             | LEDGER_SERVICE_ERROR          | Ledger send/mint/balance failed
-------------|-------------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION        | Update/delete of an append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Business-rule errors (Validation, Governance, Funds) are raised BEFORE any
   mutation, or inside the caller's transaction so that a rollback leaves no
   visible state.

2. ExternalServiceError is surfaced verbatim. The kernel never retries; the
   caller decides on retry policy.

3. Read-only display checks (``VotingEngine.has_voted``) are the only places
   that degrade to a safe default instead of raising.
"""


class MilestoneKernelError(Exception):
    """
    Base exception for all milestone kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "MILESTONE_KERNEL_ERROR"


# Validation exceptions


class ValidationError(MilestoneKernelError, ValueError):
    """A required field is missing or a value is out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidAmountError(ValidationError):
    """Monetary amount is non-positive or too small to mint governance tokens."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str):
        self.amount = amount
        super().__init__("amount", f"{amount} ({reason})")


class InvalidWeightError(ValidationError):
    """Vote weight is not a positive integer."""

    code: str = "INVALID_WEIGHT"

    def __init__(self, weight: object):
        self.weight = weight
        super().__init__("weight", f"{weight!r} (must be an integer >= 1)")


# Lookup exceptions


class NotFoundError(MilestoneKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ProjectNotFoundError(NotFoundError):
    """Project with given ID was not found."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class MilestoneNotFoundError(NotFoundError):
    """Milestone with given ID was not found (or belongs to another project)."""

    code: str = "MILESTONE_NOT_FOUND"

    def __init__(self, milestone_id: str, project_id: str | None = None):
        self.milestone_id = milestone_id
        self.project_id = project_id
        if project_id is not None:
            msg = f"Milestone {milestone_id} not found in project {project_id}"
        else:
            msg = f"Milestone not found: {milestone_id}"
        super().__init__(msg)


# Governance exceptions


class GovernanceError(MilestoneKernelError):
    """Base exception for voting and milestone lifecycle errors."""

    code: str = "GOVERNANCE_ERROR"


class DuplicateVoteError(GovernanceError):
    """
    Voter has already voted on this milestone.

    Raised from the store's uniqueness violation, never from a pre-check.
    No token balance has been spent when this is raised.
    """

    code: str = "DUPLICATE_VOTE"

    def __init__(self, milestone_id: str, voter_id: str):
        self.milestone_id = milestone_id
        self.voter_id = voter_id
        super().__init__(
            f"Voter {voter_id} has already voted on milestone {milestone_id}"
        )


class VotingClosedError(GovernanceError):
    """Milestone is released or rejected and accepts no further votes."""

    code: str = "VOTING_CLOSED"

    def __init__(self, milestone_id: str, status: str):
        self.milestone_id = milestone_id
        self.status = status
        super().__init__(
            f"Voting is closed on milestone {milestone_id} (status: {status})"
        )


class InvalidMilestoneTransitionError(GovernanceError):
    """Requested status change is not an edge of the milestone lifecycle."""

    code: str = "INVALID_MILESTONE_TRANSITION"

    def __init__(self, milestone_id: str, from_status: str, to_status: str):
        self.milestone_id = milestone_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Milestone {milestone_id} cannot move from {from_status} to {to_status}"
        )


class NotApprovedError(GovernanceError):
    """Fund release attempted on a milestone that is not approved."""

    code: str = "NOT_APPROVED"

    def __init__(self, milestone_id: str, status: str):
        self.milestone_id = milestone_id
        self.status = status
        super().__init__(
            f"Milestone {milestone_id} is not approved (status: {status})"
        )


class NotProjectCreatorError(GovernanceError):
    """A creator-only action was attempted by another user."""

    code: str = "NOT_PROJECT_CREATOR"

    def __init__(self, project_id: str, actor_id: str):
        self.project_id = project_id
        self.actor_id = actor_id
        super().__init__(
            f"User {actor_id} is not the creator of project {project_id}"
        )


# Funds exceptions


class FundsError(MilestoneKernelError):
    """Base exception for balance and fund-availability errors."""

    code: str = "FUNDS_ERROR"


class InsufficientBalanceError(FundsError):
    """Vote weight exceeds the voter's governance token balance."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, voter_id: str, requested: int, available: int):
        self.voter_id = voter_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Voter {voter_id} requested {requested} governance tokens "
            f"but holds {available}"
        )


class InsufficientLockedFundsError(FundsError):
    """Release or refund exceeds the project's locked (unreleased) funds."""

    code: str = "INSUFFICIENT_LOCKED_FUNDS"

    def __init__(self, project_id: str, requested: str, locked: str):
        self.project_id = project_id
        self.requested = requested
        self.locked = locked
        super().__init__(
            f"Cannot move {requested} from project {project_id}: "
            f"only {locked} is locked"
        )


class AllocationExceededError(FundsError):
    """Release amount exceeds the milestone's allocated amount."""

    code: str = "ALLOCATION_EXCEEDED"

    def __init__(self, milestone_id: str, requested: str, allocated: str):
        self.milestone_id = milestone_id
        self.requested = requested
        self.allocated = allocated
        super().__init__(
            f"Release of {requested} exceeds allocation {allocated} "
            f"for milestone {milestone_id}"
        )


# External collaborator exceptions


class ExternalServiceError(MilestoneKernelError):
    """Store or ledger failure surfaced verbatim to the caller."""

    code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, operation: str, reason: str):
        self.service = service
        self.operation = operation
        self.reason = reason
        super().__init__(f"{service}.{operation} failed: {reason}")


class LedgerServiceError(ExternalServiceError):
    """The ledger transaction service rejected or failed an operation."""

    code: str = "LEDGER_SERVICE_ERROR"

    def __init__(self, operation: str, reason: str):
        super().__init__("ledger", operation, reason)


# Immutability exceptions


class ImmutabilityViolationError(MilestoneKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )

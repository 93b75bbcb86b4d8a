"""
LedgerTransactionService -- boundary to the wallet/broadcast layer.

Responsibility:
    Defines the narrow interface the kernel uses to move funds and mint
    governance tokens on the external ledger, plus an in-memory simulation
    used by the test suite and the demo script.

Architecture position:
    Kernel > Services -- external collaborator boundary.  Real wallet,
    signing and broadcast implementations live outside the kernel and only
    need to satisfy ``LedgerTransactionService``.

Failure modes:
    - LedgerServiceError from any operation (insufficient funds, network or
      broadcast failure).  The kernel never retries; failures propagate to the
      caller, whose transaction rolls back.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

from milestone_kernel.db.types import DISPLAY_DECIMAL_PLACES, round_money, to_amount
from milestone_kernel.exceptions import LedgerServiceError
from milestone_kernel.logging_config import get_logger

logger = get_logger("services.ledger")


@runtime_checkable
class LedgerTransactionService(Protocol):
    """Interface to the external ledger."""

    def send(self, destination: str, amount: Decimal) -> str:
        """Move ``amount`` to ``destination``; return the transaction id."""
        ...

    def mint(self, owner: str, amount: int) -> str:
        """Issue ``amount`` governance tokens to ``owner``; return the category id."""
        ...

    def get_balance(self, account: str) -> Decimal:
        """Current base-currency balance of ``account``."""
        ...


@dataclass(frozen=True)
class LedgerMovement:
    """One simulated ledger operation, kept for inspection."""

    operation: str
    tx_id: str
    account: str
    amount: Decimal


class SimulatedLedgerService:
    """
    In-memory ledger with deterministic transaction ids.

    Funds are sent from a single source account (the project treasury).
    Transaction ids are 64 hex characters derived from a seed and a counter,
    so two simulators built with the same seed produce the same ids for the
    same sequence of calls.

    ``fail_next(operation, reason)`` makes the next call of ``operation``
    ("send", "mint" or "get_balance") raise LedgerServiceError.
    """

    def __init__(
        self,
        source_account: str = "treasury",
        source_balance: Decimal | str | int = Decimal("1000"),
        seed: str = "milestone-ledger",
    ):
        self.source_account = source_account
        self._seed = seed
        self._counter = 0
        self._lock = threading.Lock()
        self._balances: dict[str, Decimal] = {source_account: to_amount(source_balance)}
        self._token_balances: dict[str, int] = {}
        self._failures: dict[str, str] = {}
        self.movements: list[LedgerMovement] = []

    def fail_next(self, operation: str, reason: str = "simulated failure") -> None:
        self._failures[operation] = reason

    def deposit(self, account: str, amount: Decimal | str | int) -> None:
        """Credit ``account`` outside of any tracked movement (test setup)."""
        with self._lock:
            self._balances[account] = self._balances.get(account, Decimal("0")) + to_amount(amount)

    def _check_failure(self, operation: str) -> None:
        reason = self._failures.pop(operation, None)
        if reason is not None:
            logger.warning(
                "ledger_failure_injected",
                extra={"operation": operation, "reason": reason},
            )
            raise LedgerServiceError(operation, reason)

    def _next_tx_id(self, operation: str, account: str, amount: object) -> str:
        self._counter += 1
        material = f"{self._seed}:{self._counter}:{operation}:{account}:{amount}"
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def send(self, destination: str, amount: Decimal) -> str:
        with self._lock:
            self._check_failure("send")
            if not destination:
                raise LedgerServiceError("send", "destination is required")
            amount = round_money(to_amount(amount), DISPLAY_DECIMAL_PLACES)
            if amount <= 0:
                raise LedgerServiceError("send", f"amount must be positive, got {amount}")
            available = self._balances[self.source_account]
            if amount > available:
                raise LedgerServiceError(
                    "send", f"insufficient funds: {available} available, {amount} requested",
                )
            self._balances[self.source_account] = available - amount
            self._balances[destination] = self._balances.get(destination, Decimal("0")) + amount
            tx_id = self._next_tx_id("send", destination, amount)
            self.movements.append(LedgerMovement("send", tx_id, destination, amount))
        logger.info(
            "ledger_send_broadcast",
            extra={"tx_id": tx_id, "destination": destination, "amount": str(amount)},
        )
        return tx_id

    def mint(self, owner: str, amount: int) -> str:
        with self._lock:
            self._check_failure("mint")
            if not owner:
                raise LedgerServiceError("mint", "owner is required")
            if amount < 1:
                raise LedgerServiceError("mint", f"amount must be >= 1, got {amount}")
            self._token_balances[owner] = self._token_balances.get(owner, 0) + amount
            category = self._next_tx_id("mint", owner, amount)
            self.movements.append(LedgerMovement("mint", category, owner, Decimal(amount)))
        logger.info(
            "ledger_tokens_minted",
            extra={"category": category, "owner": owner, "amount": amount},
        )
        return category

    def get_balance(self, account: str) -> Decimal:
        with self._lock:
            self._check_failure("get_balance")
            return self._balances.get(account, Decimal("0"))

    def token_balance(self, owner: str) -> int:
        return self._token_balances.get(owner, 0)

"""Backend protocols composed by RedemptionEngine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from rewardman.models import LedgerEntry, RewardDefinition, Voucher


@dataclass(frozen=True)
class Eligibility:
    """Result of a catalog eligibility check."""

    eligible: bool
    reward_code: str
    reason: str | None = None  # error code when not eligible


@dataclass(frozen=True)
class LedgerAudit:
    """Balance vs. entry sum for one user."""

    user_id: str
    balance: int
    entries_sum: int
    entry_count: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.entries_sum


@runtime_checkable
class PointsLedgerBackend(Protocol):
    """Source of truth for point balances and their audit trail."""

    def get_balance(self, user_id: str) -> int:
        ...

    def ensure_account(self, user_id: str) -> None:
        """Create the zero balance row if the user has none."""
        ...

    def lock_balance(self, user_id: str) -> int:
        """
        Return the current balance with the row locked.

        MUST be called inside transaction.atomic().
        """
        ...

    def credit(self, user_id: str, amount: int, reason: str, **kwargs) -> LedgerEntry:
        ...

    def debit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        related_voucher_id: UUID | None = None,
        **kwargs,
    ) -> LedgerEntry:
        ...

    def refund(self, voucher_id: UUID) -> LedgerEntry:
        ...


@runtime_checkable
class RewardCatalogBackend(Protocol):
    """Source of truth for reward definitions and stock."""

    def get_reward(self, code: str) -> RewardDefinition:
        ...

    def check_eligible(self, code: str, now: datetime | None = None) -> Eligibility:
        ...

    def evaluate(self, reward: RewardDefinition, now: datetime | None = None) -> Eligibility:
        """Eligibility of an already loaded reward."""
        ...

    def lock_reward(self, code: str) -> RewardDefinition:
        """
        Return the reward with its row locked.

        MUST be called inside transaction.atomic().
        """
        ...

    def decrement_stock(self, code: str) -> RewardDefinition:
        ...

    def increment_stock(self, code: str, quantity: int = 1) -> RewardDefinition:
        ...


@runtime_checkable
class VoucherStoreBackend(Protocol):
    """Persistence and state machine of issued vouchers."""

    def create(
        self,
        voucher_id: UUID,
        user_id: str,
        reward: RewardDefinition,
        points_spent: int,
        expires_at: datetime,
        now: datetime | None = None,
    ) -> Voucher:
        ...

    def get(self, voucher_id: UUID | str) -> Voucher:
        ...

    def transition(
        self,
        voucher_id: UUID | str,
        from_state: str,
        to_state: str,
        now: datetime | None = None,
    ) -> Voucher:
        ...

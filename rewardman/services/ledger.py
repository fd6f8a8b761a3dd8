"""Points ledger service: balances and their audit trail.

Every mutation runs inside transaction.atomic(), locks the user's balance
row, applies a conditional update, bumps `version` and appends exactly one
LedgerEntry. Called inside an outer transaction (a redemption), the atomic
block becomes a savepoint and commits or rolls back with the caller.
"""

import logging
from uuid import UUID

from django.db import transaction
from django.db.models import Count, F, Sum
from django.utils import timezone

from rewardman.conf import rewardman_settings
from rewardman.exceptions import RewardmanError
from rewardman.models import LedgerEntry, LedgerReason, PointBalance
from rewardman.protocols import LedgerAudit
from rewardman.signals import points_credited, points_debited

logger = logging.getLogger(__name__)


class PointsLedger:
    """
    Source of truth for point balances.

    CORE:
        get_balance(user_id)
        credit(user_id, amount, reason)
        debit(user_id, amount, reason, related_voucher_id)
        refund(voucher_id)

    CONVENIENCE:
        award(user_id, reason)  - configured review/visit bonus
        history(user_id)        - newest-first entries
        audit(user_id)          - balance vs. entry sum
    """

    CREDIT_REASONS = frozenset(
        {
            LedgerReason.REVIEW_BONUS,
            LedgerReason.VISIT_BONUS,
            LedgerReason.ADMIN_ADJUSTMENT,
        }
    )
    DEBIT_REASONS = frozenset({LedgerReason.REDEMPTION, LedgerReason.ADMIN_ADJUSTMENT})
    BONUS_REASONS = frozenset({LedgerReason.REVIEW_BONUS, LedgerReason.VISIT_BONUS})

    # ======================================================================
    # Reads
    # ======================================================================

    def get_balance(self, user_id: str) -> int:
        """Current balance. Returns 0 for users without a balance row."""
        balance = (
            PointBalance.objects.filter(user_id=user_id)
            .values_list("balance", flat=True)
            .first()
        )
        return balance or 0

    def get_account(self, user_id: str) -> PointBalance | None:
        return PointBalance.objects.filter(user_id=user_id).first()

    def history(self, user_id: str, limit: int | None = None) -> list[LedgerEntry]:
        """Ledger entries for a user, newest first."""
        limit = limit or rewardman_settings.HISTORY_LIMIT
        return list(LedgerEntry.objects.filter(user_id=user_id)[:limit])

    def audit(self, user_id: str) -> LedgerAudit:
        """Compare the stored balance with the sum of the user's entries."""
        totals = LedgerEntry.objects.filter(user_id=user_id).aggregate(
            total=Sum("delta"),
            count=Count("id"),
        )
        return LedgerAudit(
            user_id=user_id,
            balance=self.get_balance(user_id),
            entries_sum=totals["total"] or 0,
            entry_count=totals["count"],
        )

    # ======================================================================
    # Accounts
    # ======================================================================

    def ensure_account(self, user_id: str) -> None:
        """Create the zero balance row on first use."""
        PointBalance.objects.get_or_create(user_id=user_id)

    def lock_balance(self, user_id: str) -> int:
        """
        Current balance with the balance row locked.

        MUST be called inside transaction.atomic().
        """
        account = self._get_account_for_update(user_id)
        return account.balance if account else 0

    # ======================================================================
    # Mutations
    # ======================================================================

    def credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        description: str = "",
        reference: str = "",
        created_by: str = "",
    ) -> LedgerEntry:
        """
        Add points to a user's balance.

        Raises:
            RewardmanError: INVALID_AMOUNT if amount <= 0,
                INVALID_REASON if reason is not a credit reason
        """
        self._validate_amount(amount)
        self._validate_reason(reason, self.CREDIT_REASONS)

        with transaction.atomic():
            self.ensure_account(user_id)
            account = self._get_account_for_update(user_id)
            self._apply(account, amount, lifetime=amount)
            entry = self._append(
                account,
                amount,
                reason,
                description=description,
                reference=reference,
                created_by=created_by,
            )

        logger.info("Credited %d points to %s (%s)", amount, user_id, reason)
        transaction.on_commit(
            lambda: points_credited.send(sender=LedgerEntry, entry=entry)
        )
        return entry

    def debit(
        self,
        user_id: str,
        amount: int,
        reason: str = LedgerReason.REDEMPTION,
        related_voucher_id: UUID | None = None,
        description: str = "",
        reference: str = "",
        created_by: str = "",
    ) -> LedgerEntry:
        """
        Remove points from a user's balance.

        During a redemption this must run inside the engine's transaction
        so the debit commits together with the stock decrement and voucher.

        Raises:
            RewardmanError: INVALID_AMOUNT, INVALID_REASON or
                INSUFFICIENT_BALANCE
        """
        self._validate_amount(amount)
        self._validate_reason(reason, self.DEBIT_REASONS)

        with transaction.atomic():
            account = self._get_account_for_update(user_id)
            available = account.balance if account else 0
            if account is None or not self._apply(account, -amount):
                raise RewardmanError(
                    "INSUFFICIENT_BALANCE",
                    user_id=user_id,
                    available=available,
                    requested=amount,
                )
            entry = self._append(
                account,
                -amount,
                reason,
                related_voucher_id=related_voucher_id,
                description=description,
                reference=reference,
                created_by=created_by,
            )

        logger.info("Debited %d points from %s (%s)", amount, user_id, reason)
        transaction.on_commit(
            lambda: points_debited.send(sender=LedgerEntry, entry=entry)
        )
        return entry

    def refund(self, voucher_id: UUID) -> LedgerEntry:
        """
        Re-credit the points spent on a voucher, exactly once.

        A second call returns the original refund entry without writing.

        Raises:
            RewardmanError: NOT_FOUND if no redemption debit references
                the voucher
        """
        existing = self._refund_entry(voucher_id)
        if existing is not None:
            logger.debug("Refund for voucher %s already recorded", voucher_id)
            return existing

        debit_entry = LedgerEntry.objects.filter(
            related_voucher_id=voucher_id,
            reason=LedgerReason.REDEMPTION,
        ).first()
        if debit_entry is None:
            raise RewardmanError("NOT_FOUND", voucher_id=str(voucher_id))

        with transaction.atomic():
            account = self._get_account_for_update(debit_entry.user_id)

            # Re-check under the lock: a concurrent refund may have won
            existing = self._refund_entry(voucher_id)
            if existing is not None:
                return existing

            amount = -debit_entry.delta
            self._apply(account, amount)
            entry = self._append(
                account,
                amount,
                LedgerReason.REFUND,
                related_voucher_id=voucher_id,
                description=debit_entry.description,
                reference=debit_entry.reference,
            )

        logger.info(
            "Refunded %d points to %s for voucher %s",
            amount,
            debit_entry.user_id,
            voucher_id,
        )
        transaction.on_commit(
            lambda: points_credited.send(sender=LedgerEntry, entry=entry)
        )
        return entry

    def award(self, user_id: str, reason: str, reference: str = "") -> LedgerEntry:
        """
        Credit the configured bonus for a review or a visit.

        Args:
            user_id: User receiving the bonus
            reason: review_bonus or visit_bonus
            reference: What was reviewed/visited (place:123)
        """
        self._validate_reason(reason, self.BONUS_REASONS)
        amount = rewardman_settings.BONUS_POINTS.get(reason)
        if not amount:
            raise RewardmanError(
                "INVALID_REASON",
                message=f"No bonus configured for '{reason}'",
                reason=reason,
            )
        return self.credit(
            user_id,
            amount,
            reason,
            description=LedgerReason(reason).label,
            reference=reference,
        )

    # ======================================================================
    # Internals
    # ======================================================================

    def _get_account_for_update(self, user_id: str) -> PointBalance | None:
        """
        Balance row with a row-level lock.

        MUST be called inside transaction.atomic().
        Prevents lost updates on concurrent credit/debit/refund.
        """
        return PointBalance.objects.select_for_update().filter(user_id=user_id).first()

    def _apply(self, account: PointBalance, delta: int, lifetime: int = 0) -> bool:
        """
        Apply `delta` with a conditional update and refresh `account`.

        Returns False (nothing written) when the result would be negative.
        """
        qs = PointBalance.objects.filter(pk=account.pk)
        if delta < 0:
            qs = qs.filter(balance__gte=-delta)
        updated = qs.update(
            balance=F("balance") + delta,
            lifetime_points=F("lifetime_points") + lifetime,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if updated:
            account.refresh_from_db(fields=["balance", "lifetime_points", "version"])
        return bool(updated)

    def _append(
        self,
        account: PointBalance,
        delta: int,
        reason: str,
        related_voucher_id: UUID | None = None,
        description: str = "",
        reference: str = "",
        created_by: str = "",
    ) -> LedgerEntry:
        return LedgerEntry.objects.create(
            user_id=account.user_id,
            delta=delta,
            reason=reason,
            balance_after=account.balance,
            related_voucher_id=related_voucher_id,
            description=description,
            reference=reference,
            created_by=created_by,
        )

    def _refund_entry(self, voucher_id: UUID) -> LedgerEntry | None:
        return LedgerEntry.objects.filter(
            related_voucher_id=voucher_id,
            reason=LedgerReason.REFUND,
        ).first()

    @staticmethod
    def _validate_amount(amount) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise RewardmanError("INVALID_AMOUNT", amount=str(amount))

    @staticmethod
    def _validate_reason(reason: str, allowed: frozenset) -> None:
        if reason not in allowed:
            raise RewardmanError(
                "INVALID_REASON",
                reason=str(reason),
                allowed=sorted(str(r) for r in allowed),
            )

"""Redemption engine: atomic, idempotent reward redemption.

A redemption attempt moves Requested -> Validated -> Committed -> Issued,
or Requested -> Rejected. The ledger debit, the stock decrement and the
voucher creation commit together or not at all.

Lock order inside transactions is fixed:
    redeem:          balance row -> reward row
    cancel_voucher:  voucher row -> balance row -> reward row
so concurrent redemptions and cancellations cannot deadlock.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from rewardman.conf import rewardman_settings
from rewardman.exceptions import RewardmanError
from rewardman.models import (
    LedgerReason,
    RedemptionRequest,
    RedemptionStatus,
    RewardDefinition,
    Voucher,
    VoucherState,
)
from rewardman.models.redemption_request import REQUEST_ID_MAX_LENGTH
from rewardman.protocols import (
    PointsLedgerBackend,
    RewardCatalogBackend,
    VoucherStoreBackend,
)
from rewardman.signals import voucher_cancelled, voucher_issued

logger = logging.getLogger(__name__)


class RedemptionEngine:
    """
    Orchestrates redemptions over injected collaborators.

    Usage:
        engine = RedemptionEngine.default()
        voucher = engine.redeem("user-1", "ceviche-2x1", request_id="req-1")

    Collaborators can be swapped for tests or other storage:
        engine = RedemptionEngine(ledger=..., catalog=..., vouchers=...)
    """

    def __init__(
        self,
        ledger: PointsLedgerBackend,
        catalog: RewardCatalogBackend,
        vouchers: VoucherStoreBackend,
    ):
        self.ledger = ledger
        self.catalog = catalog
        self.vouchers = vouchers

    @classmethod
    def default(cls) -> RedemptionEngine:
        """Engine wired to the Django ORM backends."""
        from rewardman.services.catalog import RewardCatalog
        from rewardman.services.ledger import PointsLedger
        from rewardman.services.vouchers import VoucherStore

        return cls(ledger=PointsLedger(), catalog=RewardCatalog(), vouchers=VoucherStore())

    # ======================================================================
    # Redeem
    # ======================================================================

    def redeem(
        self,
        user_id: str,
        reward_code: str,
        request_id: str,
        now: datetime | None = None,
    ) -> Voucher:
        """
        Redeem a reward for a user.

        Retrying with the same request_id replays the first outcome: the
        same voucher, or the same rejection. Only TRANSIENT failures are
        not recorded, so their retry executes again.

        Args:
            user_id: Authenticated user (trusted)
            reward_code: Reward to redeem
            request_id: Client-supplied idempotency key
            now: Reference time (default: timezone.now())

        Returns:
            Voucher in state ISSUED (or the replayed voucher)

        Raises:
            RewardmanError: NOT_FOUND, EXPIRED, OUT_OF_STOCK,
                INSUFFICIENT_BALANCE, CONFLICT or TRANSIENT
        """
        if not request_id:
            raise ValueError("request_id is required")
        if len(request_id) > REQUEST_ID_MAX_LENGTH:
            raise ValueError(f"request_id must be at most {REQUEST_ID_MAX_LENGTH} characters")

        previous = self._replay(request_id, user_id, reward_code)
        if previous is not None:
            return previous

        now = now or timezone.now()
        try:
            reward = self._precheck(user_id, reward_code, now)
            voucher, created = self._commit(user_id, reward, request_id, now)
        except RewardmanError as exc:
            if exc.retryable or exc.code == "CONFLICT":
                raise
            return self._reject(request_id, user_id, reward_code, exc)

        if not created:
            return voucher

        logger.info(
            "Redeemed %s for %s: voucher %s (%d points)",
            reward_code,
            user_id,
            voucher.code,
            voucher.points_spent,
        )
        transaction.on_commit(lambda: voucher_issued.send(sender=Voucher, voucher=voucher))
        return voucher

    def _precheck(self, user_id: str, reward_code: str, now: datetime) -> RewardDefinition:
        """Advisory eligibility check outside the transaction (may be stale)."""
        eligibility = self.catalog.check_eligible(reward_code, now)
        if not eligibility.eligible:
            raise RewardmanError(eligibility.reason, reward_code=reward_code)

        reward = self.catalog.get_reward(reward_code)

        self.ledger.ensure_account(user_id)
        balance = self.ledger.get_balance(user_id)
        if balance < reward.points_cost:
            raise RewardmanError(
                "INSUFFICIENT_BALANCE",
                user_id=user_id,
                available=balance,
                requested=reward.points_cost,
            )
        return reward

    def _commit(
        self,
        user_id: str,
        reward: RewardDefinition,
        request_id: str,
        now: datetime,
    ) -> tuple[Voucher, bool]:
        """
        Re-validate and apply debit + stock decrement + voucher as one unit.

        Returns:
            Tuple of (Voucher, created: bool); created is False when a
            concurrent call with the same request_id committed first
        """
        voucher_id = uuid.uuid4()
        try:
            with transaction.atomic():
                balance = self.ledger.lock_balance(user_id)
                reward = self.catalog.lock_reward(reward.code)
                self._revalidate(user_id, reward, balance, now)

                self.ledger.debit(
                    user_id,
                    reward.points_cost,
                    LedgerReason.REDEMPTION,
                    related_voucher_id=voucher_id,
                    description=reward.name[:200],
                    reference=f"reward:{reward.code}",
                )
                reward = self.catalog.decrement_stock(reward.code)
                voucher = self.vouchers.create(
                    voucher_id,
                    user_id,
                    reward,
                    reward.points_cost,
                    self._expires_at(reward, now),
                    now=now,
                )
                RedemptionRequest.objects.create(
                    request_id=request_id,
                    user_id=user_id,
                    reward_code=reward.code,
                    status=RedemptionStatus.SUCCEEDED,
                    voucher=voucher,
                )
        except IntegrityError as exc:
            # A concurrent call with the same request_id committed first
            previous = self._replay(request_id, user_id, reward.code)
            if previous is not None:
                return previous, False
            logger.warning("Redemption %s hit an integrity error: %s", request_id, exc)
            raise RewardmanError("TRANSIENT", request_id=request_id) from exc
        except DatabaseError as exc:
            logger.warning("Redemption %s failed transiently: %s", request_id, exc)
            raise RewardmanError("TRANSIENT", request_id=request_id) from exc

        return voucher, True

    def _revalidate(
        self,
        user_id: str,
        reward: RewardDefinition,
        balance: int,
        now: datetime,
    ) -> None:
        """Eligibility against locked, current rows."""
        eligibility = self.catalog.evaluate(reward, now)
        if not eligibility.eligible:
            raise RewardmanError(eligibility.reason, reward_code=reward.code)
        if balance < reward.points_cost:
            raise RewardmanError(
                "INSUFFICIENT_BALANCE",
                user_id=user_id,
                available=balance,
                requested=reward.points_cost,
            )

    def _expires_at(self, reward: RewardDefinition, now: datetime) -> datetime:
        days = reward.voucher_validity_days or rewardman_settings.VOUCHER_VALIDITY_DAYS
        return now + timedelta(days=days)

    # ======================================================================
    # Idempotency
    # ======================================================================

    def _replay(self, request_id: str, user_id: str, reward_code: str) -> Voucher | None:
        """
        Outcome of an already resolved request.

        Returns the voucher of a successful request, re-raises the error of
        a rejected one, and returns None for unseen keys.

        Raises:
            RewardmanError: CONFLICT if the key was used with other parameters
        """
        record = (
            RedemptionRequest.objects.select_related("voucher", "voucher__reward")
            .filter(request_id=request_id)
            .first()
        )
        if record is None:
            return None

        if not record.matches(user_id, reward_code):
            logger.warning(
                "Redemption %s reused with different parameters (%s/%s vs %s/%s)",
                request_id,
                record.user_id,
                record.reward_code,
                user_id,
                reward_code,
            )
            raise RewardmanError(
                "CONFLICT",
                request_id=request_id,
                original_reward_code=record.reward_code,
            )

        logger.debug("Redemption %s replayed (%s)", request_id, record.status)
        if record.status == RedemptionStatus.SUCCEEDED:
            return record.voucher
        raise RewardmanError(record.error_code, **record.error_data)

    def _reject(
        self,
        request_id: str,
        user_id: str,
        reward_code: str,
        error: RewardmanError,
    ) -> Voucher:
        """Record a terminal rejection, then raise it."""
        try:
            with transaction.atomic():
                RedemptionRequest.objects.create(
                    request_id=request_id,
                    user_id=user_id,
                    reward_code=reward_code,
                    status=RedemptionStatus.REJECTED,
                    error_code=error.code,
                    error_data=error.data,
                )
        except IntegrityError as exc:
            # Lost the race against a concurrent call with the same key
            previous = self._replay(request_id, user_id, reward_code)
            if previous is not None:
                return previous
            logger.warning("Redemption %s rejection not recorded: %s", request_id, exc)
            raise RewardmanError("TRANSIENT", request_id=request_id) from exc
        except DatabaseError as exc:
            logger.warning("Redemption %s rejection not recorded: %s", request_id, exc)
            raise RewardmanError("TRANSIENT", request_id=request_id) from exc

        logger.warning(
            "Redemption %s rejected for %s on %s: %s",
            request_id,
            user_id,
            reward_code,
            error.code,
        )
        raise error

    # ======================================================================
    # Cancellation (compensating transaction)
    # ======================================================================

    def cancel_voucher(self, voucher_id, now: datetime | None = None) -> Voucher:
        """
        Cancel an issued voucher: refund its points and restore one unit of stock.

        An overdue voucher is expired instead, without refund.

        Raises:
            RewardmanError: NOT_FOUND, INVALID_TRANSITION (not in ISSUED),
                EXPIRED (past its expiry)
        """
        now = now or timezone.now()

        current = self.vouchers.get(voucher_id)
        if current.state == VoucherState.ISSUED and current.is_overdue(now):
            # Outside the refund transaction so the expiry is kept
            self.vouchers.transition(
                voucher_id, VoucherState.ISSUED, VoucherState.CANCELLED, now=now
            )

        with transaction.atomic():
            voucher = self.vouchers.transition(
                voucher_id, VoucherState.ISSUED, VoucherState.CANCELLED, now=now
            )
            refund = self.ledger.refund(voucher.id)
            self.catalog.increment_stock(voucher.reward.code)

        logger.info(
            "Voucher %s cancelled: %d points refunded to %s",
            voucher.code,
            refund.delta,
            voucher.user_id,
        )
        transaction.on_commit(
            lambda: voucher_cancelled.send(sender=Voucher, voucher=voucher, refund=refund)
        )
        return voucher

    # ======================================================================
    # Reads and maintenance
    # ======================================================================

    def balance(self, user_id: str) -> int:
        return self.ledger.get_balance(user_id)

    def get_voucher(self, voucher_id) -> Voucher:
        return self.vouchers.get(voucher_id)

    def expire_overdue(self, now: datetime | None = None, dry_run: bool = False) -> int:
        return self.vouchers.expire_overdue(now=now, dry_run=dry_run)

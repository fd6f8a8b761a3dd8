"""Reward catalog service: definitions, eligibility and stock."""

import logging
from datetime import datetime

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from rewardman.exceptions import RewardmanError
from rewardman.models import Partner, RewardDefinition
from rewardman.protocols import Eligibility

logger = logging.getLogger(__name__)


class RewardCatalog:
    """
    Source of truth for reward definitions and stock.

    Definitions are written by catalog administration (Django admin).
    This service only reads them and moves stock by one unit at a time.
    """

    def get_reward(self, code: str) -> RewardDefinition:
        """
        Get an active reward by code.

        Raises:
            RewardmanError: NOT_FOUND if missing or inactive
        """
        try:
            return RewardDefinition.objects.select_related("partner").get(
                code=code, is_active=True
            )
        except RewardDefinition.DoesNotExist:
            raise RewardmanError("NOT_FOUND", reward_code=code)

    def list_rewards(
        self,
        available_only: bool = False,
        now: datetime | None = None,
        partner_code: str | None = None,
    ) -> list[RewardDefinition]:
        """
        List active rewards.

        Args:
            available_only: Only rewards with stock inside their validity window
            now: Reference time for the window (default: timezone.now())
            partner_code: Restrict to one partner
        """
        qs = RewardDefinition.objects.select_related("partner").filter(is_active=True)

        if available_only:
            now = now or timezone.now()
            qs = qs.filter(stock__gt=0, valid_from__lte=now, valid_until__gte=now)

        if partner_code:
            qs = qs.filter(partner__code=partner_code)

        return list(qs)

    def list_partners(self) -> list[Partner]:
        return list(Partner.objects.filter(is_active=True))

    # ======================================================================
    # Eligibility
    # ======================================================================

    def check_eligible(self, code: str, now: datetime | None = None) -> Eligibility:
        """Eligible iff the reward exists, is in its validity window and has stock."""
        try:
            reward = self.get_reward(code)
        except RewardmanError as exc:
            return Eligibility(False, code, exc.code)
        return self.evaluate(reward, now)

    def evaluate(self, reward: RewardDefinition, now: datetime | None = None) -> Eligibility:
        """Eligibility of an already loaded reward (no query)."""
        now = now or timezone.now()

        if not reward.is_active:
            return Eligibility(False, reward.code, "NOT_FOUND")
        if not reward.is_within_validity(now):
            return Eligibility(False, reward.code, "EXPIRED")
        if reward.stock <= 0:
            return Eligibility(False, reward.code, "OUT_OF_STOCK")
        return Eligibility(True, reward.code)

    # ======================================================================
    # Stock
    # ======================================================================

    def lock_reward(self, code: str) -> RewardDefinition:
        """
        Reward row with a row-level lock.

        MUST be called inside transaction.atomic().
        """
        try:
            return RewardDefinition.objects.select_for_update().get(code=code)
        except RewardDefinition.DoesNotExist:
            raise RewardmanError("NOT_FOUND", reward_code=code)

    def decrement_stock(self, code: str) -> RewardDefinition:
        """
        Take one unit of stock.

        Must be composed into the same transaction as the ledger debit.

        Raises:
            RewardmanError: OUT_OF_STOCK if stock is 0, NOT_FOUND if unknown
        """
        with transaction.atomic():
            updated = RewardDefinition.objects.filter(code=code, stock__gt=0).update(
                stock=F("stock") - 1,
                updated_at=timezone.now(),
            )
            if not updated:
                reward = self.lock_reward(code)
                raise RewardmanError("OUT_OF_STOCK", reward_code=code, stock=reward.stock)
            reward = RewardDefinition.objects.select_related("partner").get(code=code)

        logger.info("Stock of %s decremented to %d", code, reward.stock)
        return reward

    def increment_stock(self, code: str, quantity: int = 1) -> RewardDefinition:
        """
        Add `quantity` units of stock (voucher cancellation, admin restock).

        The column is updated in place, so concurrent redemptions are not
        overwritten. No upper bound is enforced here.

        Raises:
            RewardmanError: INVALID_AMOUNT if quantity <= 0, NOT_FOUND
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise RewardmanError("INVALID_AMOUNT", amount=str(quantity))

        with transaction.atomic():
            updated = RewardDefinition.objects.filter(code=code).update(
                stock=F("stock") + quantity,
                updated_at=timezone.now(),
            )
            if not updated:
                raise RewardmanError("NOT_FOUND", reward_code=code)
            reward = RewardDefinition.objects.select_related("partner").get(code=code)

        logger.info("Stock of %s raised by %d to %d", code, quantity, reward.stock)
        return reward

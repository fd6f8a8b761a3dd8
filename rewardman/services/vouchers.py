"""Voucher store: persistence and state machine of issued vouchers."""

import logging
import secrets
from datetime import datetime
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from rewardman.conf import rewardman_settings
from rewardman.exceptions import RewardmanError
from rewardman.models import RewardDefinition, Voucher, VoucherState
from rewardman.models.voucher import (
    ALLOWED_TRANSITIONS,
    OVERDUE_GUARDED_STATES,
    STATE_TIMESTAMP_FIELDS,
)
from rewardman.signals import voucher_transitioned

logger = logging.getLogger(__name__)


# No 0/O, 1/I/L: codes are read aloud and typed by partner staff
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"

_CODE_ATTEMPTS = 5


class VoucherStore:
    """
    Persistence of vouchers and their state transitions.

    Transitions are compare-and-set: the update only applies if the stored
    state still equals `from_state`, so two concurrent transitions of the
    same voucher cannot both win.
    """

    def create(
        self,
        voucher_id: UUID,
        user_id: str,
        reward: RewardDefinition,
        points_spent: int,
        expires_at: datetime,
        now: datetime | None = None,
    ) -> Voucher:
        """
        Create a voucher in state ISSUED.

        Called only from within RedemptionEngine's transaction.
        """
        return Voucher.objects.create(
            id=voucher_id,
            user_id=user_id,
            reward=reward,
            points_spent=points_spent,
            code=self._allocate_code(),
            state=VoucherState.ISSUED,
            issued_at=now or timezone.now(),
            expires_at=expires_at,
        )

    def get(self, voucher_id: UUID | str) -> Voucher:
        """
        Get voucher by id.

        Raises:
            RewardmanError: NOT_FOUND (also for malformed ids)
        """
        try:
            return Voucher.objects.select_related("reward", "reward__partner").get(
                pk=voucher_id
            )
        except (Voucher.DoesNotExist, ValidationError, ValueError):
            raise RewardmanError("NOT_FOUND", voucher_id=str(voucher_id))

    def get_by_code(self, code: str) -> Voucher:
        try:
            return Voucher.objects.select_related("reward", "reward__partner").get(
                code=code.strip().upper()
            )
        except Voucher.DoesNotExist:
            raise RewardmanError("NOT_FOUND", voucher_code=code)

    def list_for_user(
        self,
        user_id: str,
        state: str | None = None,
        limit: int = 50,
    ) -> list[Voucher]:
        qs = Voucher.objects.select_related("reward", "reward__partner").filter(
            user_id=user_id
        )
        if state:
            qs = qs.filter(state=state)
        return list(qs[:limit])

    # ======================================================================
    # State machine
    # ======================================================================

    def transition(
        self,
        voucher_id: UUID | str,
        from_state: str,
        to_state: str,
        now: datetime | None = None,
    ) -> Voucher:
        """
        Move a voucher from `from_state` to `to_state`.

        A voucher past its expiry cannot be presented, consumed or cancelled:
        the request expires it instead (committed) and then raises EXPIRED.

        Raises:
            RewardmanError: INVALID_TRANSITION if the pair is not allowed or
                the recorded state differs from `from_state`; EXPIRED as
                described above; NOT_FOUND for unknown vouchers
        """
        now = now or timezone.now()

        if (from_state, to_state) not in ALLOWED_TRANSITIONS:
            raise RewardmanError(
                "INVALID_TRANSITION",
                voucher_id=str(voucher_id),
                from_state=str(from_state),
                to_state=str(to_state),
            )

        with transaction.atomic():
            voucher = self._get_for_update(voucher_id)

            if voucher.state != from_state:
                raise RewardmanError(
                    "INVALID_TRANSITION",
                    voucher_id=str(voucher.id),
                    from_state=str(from_state),
                    to_state=str(to_state),
                    current_state=voucher.state,
                )

            target = to_state
            if to_state == VoucherState.EXPIRED and not voucher.is_overdue(now):
                raise RewardmanError(
                    "INVALID_TRANSITION",
                    message="Voucher has not reached its expiry",
                    voucher_id=str(voucher.id),
                    expires_at=voucher.expires_at.isoformat(),
                )
            if to_state in OVERDUE_GUARDED_STATES and voucher.is_overdue(now):
                target = VoucherState.EXPIRED

            updated = Voucher.objects.filter(pk=voucher.pk, state=from_state).update(
                state=target,
                **{STATE_TIMESTAMP_FIELDS[target]: now},
            )
            if not updated:
                raise RewardmanError(
                    "INVALID_TRANSITION",
                    voucher_id=str(voucher.id),
                    from_state=str(from_state),
                    to_state=str(to_state),
                )
            voucher.refresh_from_db()

        logger.info("Voucher %s: %s -> %s", voucher.code, from_state, target)
        transaction.on_commit(
            lambda: voucher_transitioned.send(
                sender=Voucher, voucher=voucher, from_state=str(from_state)
            )
        )

        if target != to_state:
            raise RewardmanError(
                "EXPIRED",
                voucher_id=str(voucher.id),
                expires_at=voucher.expires_at.isoformat(),
            )
        return voucher

    def present(
        self,
        voucher_id: UUID | str,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> Voucher:
        """User shows the voucher to a partner (issued -> presented)."""
        if user_id is not None:
            self._get_owned(voucher_id, user_id)
        return self.transition(voucher_id, VoucherState.ISSUED, VoucherState.PRESENTED, now=now)

    def consume(self, voucher_id: UUID | str, now: datetime | None = None) -> Voucher:
        """Partner confirms redemption (presented -> consumed). Terminal."""
        return self.transition(voucher_id, VoucherState.PRESENTED, VoucherState.CONSUMED, now=now)

    def expire_overdue(self, now: datetime | None = None, dry_run: bool = False) -> int:
        """
        Expire issued/presented vouchers past their expiry.

        Points are NOT refunded for expired vouchers.

        Returns:
            Number of vouchers expired (or that would be, with dry_run)
        """
        now = now or timezone.now()
        overdue = list(
            Voucher.objects.filter(
                state__in=[VoucherState.ISSUED, VoucherState.PRESENTED],
                expires_at__lt=now,
            ).values_list("pk", "state")
        )
        if dry_run:
            return len(overdue)

        expired = 0
        for voucher_id, state in overdue:
            try:
                self.transition(voucher_id, state, VoucherState.EXPIRED, now=now)
            except RewardmanError as exc:
                if exc.code != "INVALID_TRANSITION":
                    raise
                # Moved by someone else since the scan
                logger.debug("Voucher %s changed before expiry: %s", voucher_id, exc.data)
                continue
            expired += 1

        if expired:
            logger.info("Expired %d overdue vouchers", expired)
        return expired

    # ======================================================================
    # Internals
    # ======================================================================

    def _get_for_update(self, voucher_id: UUID | str) -> Voucher:
        """
        Voucher with a row-level lock.

        MUST be called inside transaction.atomic().
        """
        try:
            return Voucher.objects.select_for_update().get(pk=voucher_id)
        except (Voucher.DoesNotExist, ValidationError, ValueError):
            raise RewardmanError("NOT_FOUND", voucher_id=str(voucher_id))

    def _get_owned(self, voucher_id: UUID | str, user_id: str) -> Voucher:
        """Voucher belonging to `user_id`; other users' vouchers are NOT_FOUND."""
        voucher = self.get(voucher_id)
        if voucher.user_id != user_id:
            raise RewardmanError("NOT_FOUND", voucher_id=str(voucher_id))
        return voucher

    def _allocate_code(self) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = self.generate_code()
            if not Voucher.objects.filter(code=code).exists():
                return code
        raise RewardmanError(
            "TRANSIENT",
            message="Could not allocate a unique voucher code",
        )

    @staticmethod
    def generate_code() -> str:
        length = rewardman_settings.VOUCHER_CODE_LENGTH
        body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        return f"{rewardman_settings.VOUCHER_CODE_PREFIX}{body}"

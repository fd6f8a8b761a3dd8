"""Voucher model: proof of redemption presented at a partner."""

import uuid

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class VoucherState(models.TextChoices):
    ISSUED = "issued", _("Emitido")
    PRESENTED = "presented", _("Presentado")
    CONSUMED = "consumed", _("Consumido")
    EXPIRED = "expired", _("Vencido")
    CANCELLED = "cancelled", _("Anulado")


# (from_state, to_state) pairs accepted by VoucherStore.transition()
ALLOWED_TRANSITIONS = frozenset(
    {
        (VoucherState.ISSUED, VoucherState.PRESENTED),
        (VoucherState.PRESENTED, VoucherState.CONSUMED),
        (VoucherState.ISSUED, VoucherState.EXPIRED),
        (VoucherState.PRESENTED, VoucherState.EXPIRED),
        (VoucherState.ISSUED, VoucherState.CANCELLED),
    }
)

# Target states an overdue voucher cannot enter; it expires instead
OVERDUE_GUARDED_STATES = frozenset(
    {VoucherState.PRESENTED, VoucherState.CONSUMED, VoucherState.CANCELLED}
)

TERMINAL_STATES = frozenset(
    {VoucherState.CONSUMED, VoucherState.EXPIRED, VoucherState.CANCELLED}
)

# Timestamp column stamped when entering each state
STATE_TIMESTAMP_FIELDS = {
    VoucherState.PRESENTED: "presented_at",
    VoucherState.CONSUMED: "consumed_at",
    VoucherState.EXPIRED: "expired_at",
    VoucherState.CANCELLED: "cancelled_at",
}


class Voucher(models.Model):
    """
    Voucher issued by a redemption.

    Created in state ISSUED in the same transaction that debits the points
    and decrements the reward stock. The points debit references the
    voucher id; the voucher never references ledger entries.

    Lifecycle:
        issued -> presented -> consumed
        issued|presented -> expired   (no refund)
        issued -> cancelled           (points refunded, stock restored)
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(_("usuario"), max_length=100, db_index=True)
    reward = models.ForeignKey(
        "rewardman.RewardDefinition",
        on_delete=models.PROTECT,
        related_name="vouchers",
        verbose_name=_("recompensa"),
    )
    points_spent = models.PositiveIntegerField(_("puntos canjeados"))

    code = models.CharField(
        _("código"),
        max_length=32,
        unique=True,
        help_text=_("Código presentado al socio"),
    )
    state = models.CharField(
        _("estado"),
        max_length=20,
        choices=VoucherState.choices,
        default=VoucherState.ISSUED,
        db_index=True,
    )

    issued_at = models.DateTimeField(_("emitido en"), default=timezone.now)
    expires_at = models.DateTimeField(_("vence en"), db_index=True)
    presented_at = models.DateTimeField(_("presentado en"), null=True, blank=True)
    consumed_at = models.DateTimeField(_("consumido en"), null=True, blank=True)
    expired_at = models.DateTimeField(_("vencido en"), null=True, blank=True)
    cancelled_at = models.DateTimeField(_("anulado en"), null=True, blank=True)

    class Meta:
        db_table = "rewardman_voucher"
        verbose_name = _("cupón")
        verbose_name_plural = _("cupones")
        ordering = ["-issued_at"]
        indexes = [
            models.Index(fields=["user_id", "-issued_at"], name="rewardman_v_user_id_8a2d4b_idx"),
            models.Index(fields=["state", "expires_at"], name="rewardman_v_state_3c9e71_idx"),
        ]

    def __str__(self):
        return f"{self.code} [{self.state}]"

    @property
    def qr_payload(self) -> str:
        """String encoded in the QR shown to the partner."""
        return f"REWARD-{self.reward.code}-{self.code}"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_overdue(self, now=None) -> bool:
        now = now or timezone.now()
        return now > self.expires_at

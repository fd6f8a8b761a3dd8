"""Points ledger models: balances and the append-only audit trail.

Data architecture:
    PointBalance
        One row per user. Holds the current spendable balance and a version
        counter bumped on every mutation. Never deleted.

    LedgerEntry
        Immutable record of every balance change. The sum of a user's deltas
        always equals PointBalance.balance for that user.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class LedgerReason(models.TextChoices):
    """Why a ledger entry was written."""

    REVIEW_BONUS = "review_bonus", _("Bono por reseña")
    VISIT_BONUS = "visit_bonus", _("Bono por visita")
    REDEMPTION = "redemption", _("Canje")
    REFUND = "refund", _("Reembolso")
    ADMIN_ADJUSTMENT = "admin_adjustment", _("Ajuste administrativo")


class PointBalance(models.Model):
    """
    Current point balance of a user.

    user_id is opaque: the identity provider owns users, rewardman only
    trusts the identifier it is given.
    """

    user_id = models.CharField(_("usuario"), max_length=100, unique=True)
    balance = models.IntegerField(
        _("saldo"),
        default=0,
        help_text=_("Puntos disponibles para canjear"),
    )
    lifetime_points = models.IntegerField(
        _("puntos acumulados"),
        default=0,
        help_text=_("Total de puntos ganados (nunca decrece)"),
    )
    version = models.PositiveIntegerField(_("versión"), default=0)

    created_at = models.DateTimeField(_("creado en"), auto_now_add=True)
    updated_at = models.DateTimeField(_("actualizado en"), auto_now=True)

    class Meta:
        db_table = "rewardman_point_balance"
        verbose_name = _("saldo de puntos")
        verbose_name_plural = _("saldos de puntos")
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="rewardman_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.balance}pts (v{self.version})"


class LedgerEntry(models.Model):
    """
    Immutable record of a balance change.

    Positive delta for credits and refunds, negative for redemptions.
    Entries are append-only: never modified or deleted.
    """

    user_id = models.CharField(_("usuario"), max_length=100, db_index=True)
    delta = models.IntegerField(_("variación"))
    reason = models.CharField(_("motivo"), max_length=20, choices=LedgerReason.choices)
    balance_after = models.IntegerField(_("saldo después"))

    description = models.CharField(_("descripción"), max_length=200, blank=True)
    reference = models.CharField(
        _("referencia"),
        max_length=100,
        blank=True,
        help_text=_("ID externo (ej: place:123)"),
    )
    related_voucher_id = models.UUIDField(
        _("cupón relacionado"),
        null=True,
        blank=True,
        db_index=True,
    )

    created_at = models.DateTimeField(_("creado en"), auto_now_add=True, db_index=True)
    created_by = models.CharField(_("creado por"), max_length=100, blank=True)

    class Meta:
        db_table = "rewardman_ledger_entry"
        verbose_name = _("movimiento de puntos")
        verbose_name_plural = _("movimientos de puntos")
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user_id", "-created_at"], name="rewardman_l_user_id_5f0c1e_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(delta=0),
                name="rewardman_entry_delta_non_zero",
            ),
            models.UniqueConstraint(
                fields=["related_voucher_id"],
                condition=models.Q(reason="refund"),
                name="rewardman_single_refund_per_voucher",
            ),
        ]

    def __str__(self):
        sign = "+" if self.delta > 0 else ""
        return f"{self.user_id}: {sign}{self.delta}pts ({self.reason})"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError("Ledger entries are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Ledger entries cannot be deleted.")

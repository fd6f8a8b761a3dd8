"""
RedemptionRequest model for idempotent redemption.

Stores the terminal outcome of every redemption attempt keyed by the
client-supplied request id, so a retried call replays the original result
instead of debiting twice.
"""

from datetime import timedelta

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


REQUEST_ID_MAX_LENGTH = 255


class RedemptionStatus(models.TextChoices):
    SUCCEEDED = "succeeded", _("Exitoso")
    REJECTED = "rejected", _("Rechazado")


class RedemptionRequest(models.Model):
    """
    Outcome of a redemption attempt, keyed by idempotency key.

    Only terminal outcomes are stored. Transient failures leave no row so
    the client may retry with the same request_id.
    """

    request_id = models.CharField(
        verbose_name=_("clave de idempotencia"),
        max_length=REQUEST_ID_MAX_LENGTH,
        unique=True,
    )
    user_id = models.CharField(_("usuario"), max_length=100)
    reward_code = models.CharField(_("recompensa"), max_length=50)
    status = models.CharField(
        _("estado"),
        max_length=20,
        choices=RedemptionStatus.choices,
    )
    voucher = models.OneToOneField(
        "rewardman.Voucher",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="redemption_request",
        verbose_name=_("cupón"),
    )
    error_code = models.CharField(_("código de error"), max_length=50, blank=True)
    error_data = models.JSONField(_("datos del error"), default=dict, blank=True)
    submitted_at = models.DateTimeField(_("enviado en"), auto_now_add=True, db_index=True)

    class Meta:
        db_table = "rewardman_redemption_request"
        verbose_name = _("solicitud de canje")
        verbose_name_plural = _("solicitudes de canje")
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(status="succeeded", voucher__isnull=False)
                    | models.Q(status="rejected", voucher__isnull=True)
                ),
                name="rewardman_request_outcome_consistent",
            ),
        ]

    def __str__(self):
        return f"{self.request_id[:20]} [{self.status}]"

    def matches(self, user_id: str, reward_code: str) -> bool:
        """True if a retry carries the same parameters as the original."""
        return self.user_id == user_id and self.reward_code == reward_code

    @classmethod
    def cleanup_old_requests(cls, days: int | None = None):
        """Remove requests older than N days."""
        if days is None:
            from rewardman.conf import rewardman_settings
            days = rewardman_settings.IDEMPOTENCY_RETENTION_DAYS
        cutoff = timezone.now() - timedelta(days=days)
        return cls.objects.filter(submitted_at__lt=cutoff).delete()

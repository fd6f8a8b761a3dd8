"""Catalog models: partners and the rewards they honour."""

import uuid as uuid_lib

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


# Discount label shown to users, by minimum points cost
_DISCOUNT_THRESHOLDS = [
    (200, "50%"),
    (150, "40%"),
    (100, "30%"),
    (50, "20%"),
    (0, "10%"),
]


class Partner(models.Model):
    """Venue that honours vouchers (restaurant, museum, tour operator...)."""

    code = models.SlugField(_("código"), max_length=50, unique=True)
    name = models.CharField(_("nombre"), max_length=200)
    category = models.CharField(_("categoría"), max_length=50, blank=True)
    address = models.CharField(_("dirección"), max_length=255, blank=True)
    latitude = models.DecimalField(
        _("latitud"), max_digits=10, decimal_places=7, null=True, blank=True
    )
    longitude = models.DecimalField(
        _("longitud"), max_digits=10, decimal_places=7, null=True, blank=True
    )
    is_active = models.BooleanField(_("activo"), default=True)

    created_at = models.DateTimeField(_("creado en"), auto_now_add=True)

    class Meta:
        db_table = "rewardman_partner"
        verbose_name = _("socio")
        verbose_name_plural = _("socios")
        ordering = ["name"]

    def __str__(self):
        return self.name


class RewardDefinition(models.Model):
    """
    Redeemable reward with finite stock.

    Definitions are maintained by catalog administration. Redemption only
    ever touches `stock`: decremented on redeem, incremented back when a
    voucher is cancelled.
    """

    # Identification (code + uuid pattern)
    code = models.SlugField(
        _("código"),
        max_length=50,
        unique=True,
        help_text=_("Identificador público de la recompensa"),
    )
    uuid = models.UUIDField(default=uuid_lib.uuid4, editable=False, unique=True)

    name = models.CharField(_("nombre"), max_length=200)
    description = models.TextField(_("descripción"), blank=True)
    image_url = models.URLField(_("imagen"), max_length=500, blank=True)

    points_cost = models.PositiveIntegerField(_("costo en puntos"))
    stock = models.IntegerField(
        _("stock"),
        default=0,
        help_text=_("Unidades disponibles para canjear"),
    )

    partner = models.ForeignKey(
        Partner,
        on_delete=models.PROTECT,
        related_name="rewards",
        verbose_name=_("socio"),
    )

    valid_from = models.DateTimeField(_("válido desde"))
    valid_until = models.DateTimeField(_("válido hasta"))
    voucher_validity_days = models.PositiveIntegerField(
        _("validez del cupón (días)"),
        null=True,
        blank=True,
        help_text=_("Vacío = usar VOUCHER_VALIDITY_DAYS"),
    )

    is_active = models.BooleanField(_("activo"), default=True)

    created_at = models.DateTimeField(_("creado en"), auto_now_add=True)
    updated_at = models.DateTimeField(_("actualizado en"), auto_now=True)

    class Meta:
        db_table = "rewardman_reward"
        verbose_name = _("recompensa")
        verbose_name_plural = _("recompensas")
        ordering = ["points_cost", "name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name="rewardman_stock_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(points_cost__gt=0),
                name="rewardman_points_cost_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(valid_until__gte=models.F("valid_from")),
                name="rewardman_validity_window_ordered",
            ),
        ]

    def __str__(self):
        return f"{self.code}: {self.name} ({self.points_cost}pts)"

    @property
    def discount_label(self) -> str:
        for threshold, label in _DISCOUNT_THRESHOLDS:
            if self.points_cost >= threshold:
                return label
        return _DISCOUNT_THRESHOLDS[-1][1]

    def is_within_validity(self, now=None) -> bool:
        """True if `now` lies inside [valid_from, valid_until]."""
        now = now or timezone.now()
        return self.valid_from <= now <= self.valid_until

# Initial migration for Rewardman

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Partner",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("code", models.SlugField(unique=True, verbose_name="código")),
                ("name", models.CharField(max_length=200, verbose_name="nombre")),
                ("category", models.CharField(blank=True, max_length=50, verbose_name="categoría")),
                ("address", models.CharField(blank=True, max_length=255, verbose_name="dirección")),
                (
                    "latitude",
                    models.DecimalField(
                        blank=True,
                        decimal_places=7,
                        max_digits=10,
                        null=True,
                        verbose_name="latitud",
                    ),
                ),
                (
                    "longitude",
                    models.DecimalField(
                        blank=True,
                        decimal_places=7,
                        max_digits=10,
                        null=True,
                        verbose_name="longitud",
                    ),
                ),
                ("is_active", models.BooleanField(default=True, verbose_name="activo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="creado en")),
            ],
            options={
                "verbose_name": "socio",
                "verbose_name_plural": "socios",
                "db_table": "rewardman_partner",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="RewardDefinition",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "code",
                    models.SlugField(
                        help_text="Identificador público de la recompensa",
                        unique=True,
                        verbose_name="código",
                    ),
                ),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("name", models.CharField(max_length=200, verbose_name="nombre")),
                ("description", models.TextField(blank=True, verbose_name="descripción")),
                ("image_url", models.URLField(blank=True, max_length=500, verbose_name="imagen")),
                ("points_cost", models.PositiveIntegerField(verbose_name="costo en puntos")),
                (
                    "stock",
                    models.IntegerField(
                        default=0,
                        help_text="Unidades disponibles para canjear",
                        verbose_name="stock",
                    ),
                ),
                ("valid_from", models.DateTimeField(verbose_name="válido desde")),
                ("valid_until", models.DateTimeField(verbose_name="válido hasta")),
                (
                    "voucher_validity_days",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Vacío = usar VOUCHER_VALIDITY_DAYS",
                        null=True,
                        verbose_name="validez del cupón (días)",
                    ),
                ),
                ("is_active", models.BooleanField(default=True, verbose_name="activo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="creado en")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="actualizado en")),
                (
                    "partner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rewards",
                        to="rewardman.partner",
                        verbose_name="socio",
                    ),
                ),
            ],
            options={
                "verbose_name": "recompensa",
                "verbose_name_plural": "recompensas",
                "db_table": "rewardman_reward",
                "ordering": ["points_cost", "name"],
            },
        ),
        migrations.AddConstraint(
            model_name="rewarddefinition",
            constraint=models.CheckConstraint(
                condition=models.Q(("stock__gte", 0)),
                name="rewardman_stock_non_negative",
            ),
        ),
        migrations.AddConstraint(
            model_name="rewarddefinition",
            constraint=models.CheckConstraint(
                condition=models.Q(("points_cost__gt", 0)),
                name="rewardman_points_cost_positive",
            ),
        ),
        migrations.AddConstraint(
            model_name="rewarddefinition",
            constraint=models.CheckConstraint(
                condition=models.Q(("valid_until__gte", models.F("valid_from"))),
                name="rewardman_validity_window_ordered",
            ),
        ),
        migrations.CreateModel(
            name="PointBalance",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("user_id", models.CharField(max_length=100, unique=True, verbose_name="usuario")),
                (
                    "balance",
                    models.IntegerField(
                        default=0,
                        help_text="Puntos disponibles para canjear",
                        verbose_name="saldo",
                    ),
                ),
                (
                    "lifetime_points",
                    models.IntegerField(
                        default=0,
                        help_text="Total de puntos ganados (nunca decrece)",
                        verbose_name="puntos acumulados",
                    ),
                ),
                ("version", models.PositiveIntegerField(default=0, verbose_name="versión")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="creado en")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="actualizado en")),
            ],
            options={
                "verbose_name": "saldo de puntos",
                "verbose_name_plural": "saldos de puntos",
                "db_table": "rewardman_point_balance",
            },
        ),
        migrations.AddConstraint(
            model_name="pointbalance",
            constraint=models.CheckConstraint(
                condition=models.Q(("balance__gte", 0)),
                name="rewardman_balance_non_negative",
            ),
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("user_id", models.CharField(db_index=True, max_length=100, verbose_name="usuario")),
                ("delta", models.IntegerField(verbose_name="variación")),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("review_bonus", "Bono por reseña"),
                            ("visit_bonus", "Bono por visita"),
                            ("redemption", "Canje"),
                            ("refund", "Reembolso"),
                            ("admin_adjustment", "Ajuste administrativo"),
                        ],
                        max_length=20,
                        verbose_name="motivo",
                    ),
                ),
                ("balance_after", models.IntegerField(verbose_name="saldo después")),
                ("description", models.CharField(blank=True, max_length=200, verbose_name="descripción")),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        help_text="ID externo (ej: place:123)",
                        max_length=100,
                        verbose_name="referencia",
                    ),
                ),
                (
                    "related_voucher_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        null=True,
                        verbose_name="cupón relacionado",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="creado en"),
                ),
                ("created_by", models.CharField(blank=True, max_length=100, verbose_name="creado por")),
            ],
            options={
                "verbose_name": "movimiento de puntos",
                "verbose_name_plural": "movimientos de puntos",
                "db_table": "rewardman_ledger_entry",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.AddIndex(
            model_name="ledgerentry",
            index=models.Index(fields=["user_id", "-created_at"], name="rewardman_l_user_id_5f0c1e_idx"),
        ),
        migrations.AddConstraint(
            model_name="ledgerentry",
            constraint=models.CheckConstraint(
                condition=models.Q(("delta", 0), _negated=True),
                name="rewardman_entry_delta_non_zero",
            ),
        ),
        migrations.AddConstraint(
            model_name="ledgerentry",
            constraint=models.UniqueConstraint(
                condition=models.Q(("reason", "refund")),
                fields=("related_voucher_id",),
                name="rewardman_single_refund_per_voucher",
            ),
        ),
        migrations.CreateModel(
            name="Voucher",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("user_id", models.CharField(db_index=True, max_length=100, verbose_name="usuario")),
                ("points_spent", models.PositiveIntegerField(verbose_name="puntos canjeados")),
                (
                    "code",
                    models.CharField(
                        help_text="Código presentado al socio",
                        max_length=32,
                        unique=True,
                        verbose_name="código",
                    ),
                ),
                (
                    "state",
                    models.CharField(
                        choices=[
                            ("issued", "Emitido"),
                            ("presented", "Presentado"),
                            ("consumed", "Consumido"),
                            ("expired", "Vencido"),
                            ("cancelled", "Anulado"),
                        ],
                        db_index=True,
                        default="issued",
                        max_length=20,
                        verbose_name="estado",
                    ),
                ),
                (
                    "issued_at",
                    models.DateTimeField(default=django.utils.timezone.now, verbose_name="emitido en"),
                ),
                ("expires_at", models.DateTimeField(db_index=True, verbose_name="vence en")),
                ("presented_at", models.DateTimeField(blank=True, null=True, verbose_name="presentado en")),
                ("consumed_at", models.DateTimeField(blank=True, null=True, verbose_name="consumido en")),
                ("expired_at", models.DateTimeField(blank=True, null=True, verbose_name="vencido en")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True, verbose_name="anulado en")),
                (
                    "reward",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="vouchers",
                        to="rewardman.rewarddefinition",
                        verbose_name="recompensa",
                    ),
                ),
            ],
            options={
                "verbose_name": "cupón",
                "verbose_name_plural": "cupones",
                "db_table": "rewardman_voucher",
                "ordering": ["-issued_at"],
            },
        ),
        migrations.AddIndex(
            model_name="voucher",
            index=models.Index(fields=["user_id", "-issued_at"], name="rewardman_v_user_id_8a2d4b_idx"),
        ),
        migrations.AddIndex(
            model_name="voucher",
            index=models.Index(fields=["state", "expires_at"], name="rewardman_v_state_3c9e71_idx"),
        ),
        migrations.CreateModel(
            name="RedemptionRequest",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "request_id",
                    models.CharField(max_length=255, unique=True, verbose_name="clave de idempotencia"),
                ),
                ("user_id", models.CharField(max_length=100, verbose_name="usuario")),
                ("reward_code", models.CharField(max_length=50, verbose_name="recompensa")),
                (
                    "status",
                    models.CharField(
                        choices=[("succeeded", "Exitoso"), ("rejected", "Rechazado")],
                        max_length=20,
                        verbose_name="estado",
                    ),
                ),
                ("error_code", models.CharField(blank=True, max_length=50, verbose_name="código de error")),
                ("error_data", models.JSONField(blank=True, default=dict, verbose_name="datos del error")),
                (
                    "submitted_at",
                    models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="enviado en"),
                ),
                (
                    "voucher",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="redemption_request",
                        to="rewardman.voucher",
                        verbose_name="cupón",
                    ),
                ),
            ],
            options={
                "verbose_name": "solicitud de canje",
                "verbose_name_plural": "solicitudes de canje",
                "db_table": "rewardman_redemption_request",
            },
        ),
        migrations.AddConstraint(
            model_name="redemptionrequest",
            constraint=models.CheckConstraint(
                condition=models.Q(
                    models.Q(("status", "succeeded"), ("voucher__isnull", False)),
                    models.Q(("status", "rejected"), ("voucher__isnull", True)),
                    _connector="OR",
                ),
                name="rewardman_request_outcome_consistent",
            ),
        ),
    ]

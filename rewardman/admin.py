"""Rewardman admin.

Catalog administration (partners, rewards, stock ceilings) happens here.
Balances, ledger entries and redemption requests are read-only: they only
change through the services.
"""

from django import forms
from django.contrib import admin, messages
from django.utils.html import format_html

from rewardman.exceptions import RewardmanError
from rewardman.models import (
    LedgerEntry,
    Partner,
    PointBalance,
    RedemptionRequest,
    RewardDefinition,
    Voucher,
)


# ===========================================
# Catalog
# ===========================================


def _save_keeping_stock(reward):
    """Save an existing reward without writing its (possibly stale) stock."""
    fields = [
        field.name
        for field in reward._meta.concrete_fields
        if not field.primary_key and field.name != "stock"
    ]
    reward.save(update_fields=fields)


class RewardDefinitionForm(forms.ModelForm):
    add_stock = forms.IntegerField(
        label="Añadir stock",
        min_value=1,
        required=False,
        help_text="Unidades a sumar al stock actual.",
    )

    class Meta:
        model = RewardDefinition
        fields = "__all__"


class RewardInline(admin.TabularInline):
    model = RewardDefinition
    extra = 0
    fields = ["code", "name", "points_cost", "stock", "valid_until", "is_active"]
    readonly_fields = ["stock"]
    show_change_link = True


@admin.register(Partner)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ["code", "name", "category", "reward_count", "is_active"]
    list_filter = ["category", "is_active"]
    search_fields = ["code", "name", "address"]
    inlines = [RewardInline]

    def reward_count(self, obj):
        return obj.rewards.count()

    reward_count.short_description = "Recompensas"

    def save_formset(self, request, form, formset, change):
        if formset.model is not RewardDefinition:
            return super().save_formset(request, form, formset, change)

        for reward in formset.save(commit=False):
            if reward._state.adding:
                reward.save()
            else:
                _save_keeping_stock(reward)
        for reward in formset.deleted_objects:
            reward.delete()
        formset.save_m2m()


@admin.register(RewardDefinition)
class RewardDefinitionAdmin(admin.ModelAdmin):
    form = RewardDefinitionForm
    list_display = [
        "code",
        "name",
        "partner",
        "points_cost",
        "discount_label",
        "stock_badge",
        "valid_from",
        "valid_until",
        "is_active",
    ]
    list_filter = ["is_active", "partner"]
    search_fields = ["code", "name", "partner__name"]
    readonly_fields = ["uuid", "created_at", "updated_at"]

    def get_readonly_fields(self, request, obj=None):
        fields = list(super().get_readonly_fields(request, obj))
        if obj is not None:
            # Existing stock only moves through in-place updates (add_stock)
            fields.append("stock")
        return fields

    def save_model(self, request, obj, form, change):
        if change:
            _save_keeping_stock(obj)
        else:
            obj.save()

        quantity = form.cleaned_data.get("add_stock")
        if quantity:
            from rewardman.services import RewardCatalog

            obj.stock = RewardCatalog().increment_stock(obj.code, quantity).stock

    def stock_badge(self, obj):
        color = "#28a745" if obj.stock > 0 else "#dc3545"
        return format_html('<span style="color:{}; font-weight:bold">{}</span>', color, obj.stock)

    stock_badge.short_description = "Stock"


# ===========================================
# Ledger (read-only)
# ===========================================


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PointBalance)
class PointBalanceAdmin(ReadOnlyAdmin):
    list_display = ["user_id", "balance", "lifetime_points", "version", "updated_at"]
    search_fields = ["user_id"]


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdmin):
    list_display = [
        "created_at",
        "user_id",
        "reason",
        "delta_display",
        "balance_after",
        "description",
    ]
    list_filter = ["reason"]
    search_fields = ["user_id", "description", "reference"]
    date_hierarchy = "created_at"

    def delta_display(self, obj):
        if obj.delta > 0:
            return format_html('<span style="color:green">+{}</span>', obj.delta)
        return format_html('<span style="color:red">{}</span>', obj.delta)

    delta_display.short_description = "Puntos"


@admin.register(RedemptionRequest)
class RedemptionRequestAdmin(ReadOnlyAdmin):
    list_display = ["request_id", "user_id", "reward_code", "status", "error_code", "submitted_at"]
    list_filter = ["status", "error_code"]
    search_fields = ["request_id", "user_id"]


# ===========================================
# Vouchers
# ===========================================


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = ["code", "user_id", "reward", "points_spent", "state", "issued_at", "expires_at"]
    list_filter = ["state", "reward__partner"]
    search_fields = ["code", "user_id", "reward__code"]
    readonly_fields = [
        "id",
        "user_id",
        "reward",
        "points_spent",
        "code",
        "state",
        "issued_at",
        "expires_at",
        "presented_at",
        "consumed_at",
        "expired_at",
        "cancelled_at",
    ]
    actions = ["cancel_vouchers"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Anular cupones (reembolsa puntos y repone stock)")
    def cancel_vouchers(self, request, queryset):
        from rewardman.services import RedemptionEngine

        engine = RedemptionEngine.default()
        cancelled = 0
        for voucher in queryset:
            try:
                engine.cancel_voucher(voucher.pk)
            except RewardmanError as exc:
                self.message_user(
                    request,
                    f"{voucher.code}: {exc.message}",
                    level=messages.WARNING,
                )
                continue
            cancelled += 1

        if cancelled:
            self.message_user(request, f"{cancelled} cupón(es) anulado(s).", level=messages.SUCCESS)

"""Tests for Rewardman admin."""

from types import SimpleNamespace

import pytest
from django.contrib import admin
from django.urls import reverse

from rewardman.admin import _save_keeping_stock
from rewardman.models import RewardDefinition, Voucher, VoucherState


pytestmark = pytest.mark.django_db


@pytest.fixture
def voucher(engine, reward, fund):
    fund("user-1", 100)
    return engine.redeem("user-1", "ceviche-2x1", request_id="req-1")


class TestVoucherAdmin:
    """Tests for the cancel action."""

    def test_cancel_action_refunds(self, admin_client, voucher, engine):
        response = admin_client.post(
            reverse("admin:rewardman_voucher_changelist"),
            {"action": "cancel_vouchers", "_selected_action": [str(voucher.pk)]},
        )

        assert response.status_code == 302
        assert Voucher.objects.get(pk=voucher.pk).state == VoucherState.CANCELLED
        assert engine.balance("user-1") == 100

    def test_cancel_action_skips_non_issued(self, admin_client, voucher, engine):
        engine.vouchers.present(voucher.id)

        admin_client.post(
            reverse("admin:rewardman_voucher_changelist"),
            {"action": "cancel_vouchers", "_selected_action": [str(voucher.pk)]},
        )

        assert Voucher.objects.get(pk=voucher.pk).state == VoucherState.PRESENTED
        assert engine.balance("user-1") == 60

    def test_changelist(self, admin_client, voucher):
        response = admin_client.get(reverse("admin:rewardman_voucher_changelist"))
        assert response.status_code == 200
        assert voucher.code in response.content.decode()


class TestReadOnlyAdmin:
    """Balances and ledger entries cannot be edited from the admin."""

    @pytest.mark.parametrize("model", ["pointbalance", "ledgerentry", "redemptionrequest"])
    def test_add_forbidden(self, admin_client, model):
        response = admin_client.get(reverse(f"admin:rewardman_{model}_add"))
        assert response.status_code == 403

    def test_reward_changelist(self, admin_client, reward):
        response = admin_client.get(reverse("admin:rewardman_rewarddefinition_changelist"))
        assert response.status_code == 200
        assert "ceviche-2x1" in response.content.decode()


class TestRewardAdmin:
    """Stock is never overwritten from a stale admin form."""

    @pytest.fixture
    def model_admin(self):
        return admin.site._registry[RewardDefinition]

    @pytest.fixture
    def admin_request(self, rf, admin_user):
        request = rf.post("/")
        request.user = admin_user
        return request

    def test_stock_read_only_on_change(self, model_admin, admin_request, reward):
        assert "stock" in model_admin.get_readonly_fields(admin_request, reward)
        assert "stock" not in model_admin.get_readonly_fields(admin_request)

    def test_change_form_offers_add_stock(self, admin_client, reward):
        response = admin_client.get(
            reverse("admin:rewardman_rewarddefinition_change", args=[reward.pk])
        )
        assert response.status_code == 200
        assert 'name="add_stock"' in response.content.decode()
        assert 'name="stock"' not in response.content.decode()

    def test_save_keeps_concurrent_stock(self, model_admin, admin_request, reward, catalog):
        stale = RewardDefinition.objects.get(code="ceviche-2x1")
        catalog.decrement_stock("ceviche-2x1")
        stale.name = "Ceviche 2x1 (martes)"

        model_admin.save_model(
            admin_request, stale, SimpleNamespace(cleaned_data={"add_stock": None}), change=True
        )

        reward.refresh_from_db()
        assert reward.stock == 0
        assert reward.name == "Ceviche 2x1 (martes)"

    def test_add_stock(self, model_admin, admin_request, reward, catalog):
        stale = RewardDefinition.objects.get(code="ceviche-2x1")
        catalog.decrement_stock("ceviche-2x1")

        model_admin.save_model(
            admin_request, stale, SimpleNamespace(cleaned_data={"add_stock": 3}), change=True
        )

        reward.refresh_from_db()
        assert reward.stock == 3
        assert stale.stock == 3

    def test_inline_save_keeps_concurrent_stock(self, reward, catalog):
        stale = RewardDefinition.objects.get(code="ceviche-2x1")
        catalog.decrement_stock("ceviche-2x1")
        stale.points_cost = 50

        _save_keeping_stock(stale)

        reward.refresh_from_db()
        assert reward.stock == 0
        assert reward.points_cost == 50

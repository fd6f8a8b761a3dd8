"""Tests for Rewardman management commands."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from rewardman.models import RedemptionRequest, RedemptionStatus, Voucher, VoucherState


pytestmark = pytest.mark.django_db


@pytest.fixture
def overdue_voucher(engine, reward, fund):
    fund("user-1", 100)
    voucher = engine.redeem("user-1", "ceviche-2x1", request_id="req-1")
    Voucher.objects.filter(pk=voucher.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
    return voucher


class TestExpireVouchersCommand:
    """Tests for rewardman_expire_vouchers."""

    def test_expires_overdue(self, overdue_voucher, engine):
        out = StringIO()
        call_command("rewardman_expire_vouchers", stdout=out)

        assert "Expired 1 vouchers." in out.getvalue()
        assert Voucher.objects.get(pk=overdue_voucher.pk).state == VoucherState.EXPIRED
        # No refund for expired vouchers
        assert engine.balance("user-1") == 60

    def test_dry_run(self, overdue_voucher):
        out = StringIO()
        call_command("rewardman_expire_vouchers", "--dry-run", stdout=out)

        assert "1 overdue vouchers would be expired." in out.getvalue()
        assert Voucher.objects.get(pk=overdue_voucher.pk).state == VoucherState.ISSUED

    def test_nothing_to_expire(self, db):
        out = StringIO()
        call_command("rewardman_expire_vouchers", stdout=out)
        assert "Expired 0 vouchers." in out.getvalue()


class TestCleanupCommand:
    """Tests for rewardman_cleanup."""

    def _request(self, request_id, age_days):
        record = RedemptionRequest.objects.create(
            request_id=request_id,
            user_id="user-1",
            reward_code="ceviche-2x1",
            status=RedemptionStatus.REJECTED,
            error_code="OUT_OF_STOCK",
        )
        RedemptionRequest.objects.filter(pk=record.pk).update(
            submitted_at=timezone.now() - timedelta(days=age_days)
        )

    def test_default_retention(self):
        self._request("old", 40)
        self._request("recent", 5)

        out = StringIO()
        call_command("rewardman_cleanup", stdout=out)

        assert "Deleted 1 old redemption requests." in out.getvalue()
        assert RedemptionRequest.objects.filter(request_id="recent").exists()

    def test_days_option(self):
        self._request("old", 40)
        self._request("recent", 5)

        call_command("rewardman_cleanup", "--days", "1", stdout=StringIO())

        assert not RedemptionRequest.objects.exists()

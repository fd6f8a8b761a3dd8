"""Tests for PointsLedger."""

import uuid

import pytest
from django.test import override_settings

from rewardman.exceptions import RewardmanError
from rewardman.models import LedgerEntry, LedgerReason, PointBalance
from rewardman.protocols import PointsLedgerBackend
from rewardman.signals import points_credited, points_debited


pytestmark = pytest.mark.django_db


class TestBalance:
    """Tests for balance reads."""

    def test_unknown_user_has_zero(self, ledger):
        assert ledger.get_balance("nobody") == 0
        assert not PointBalance.objects.filter(user_id="nobody").exists()

    def test_ensure_account_is_idempotent(self, ledger):
        ledger.ensure_account("user-1")
        ledger.ensure_account("user-1")
        assert PointBalance.objects.filter(user_id="user-1").count() == 1
        assert ledger.get_balance("user-1") == 0

    def test_implements_protocol(self, ledger):
        assert isinstance(ledger, PointsLedgerBackend)


class TestCredit:
    """Tests for PointsLedger.credit()."""

    def test_credit_creates_account(self, ledger):
        entry = ledger.credit("user-1", 100, LedgerReason.REVIEW_BONUS, reference="place:12")

        assert entry.delta == 100
        assert entry.balance_after == 100
        assert entry.reference == "place:12"
        account = PointBalance.objects.get(user_id="user-1")
        assert account.balance == 100
        assert account.lifetime_points == 100
        assert account.version == 1

    def test_credit_accumulates(self, ledger):
        ledger.credit("user-1", 100, LedgerReason.REVIEW_BONUS)
        entry = ledger.credit("user-1", 5, LedgerReason.VISIT_BONUS)

        assert entry.balance_after == 105
        assert ledger.get_balance("user-1") == 105
        assert PointBalance.objects.get(user_id="user-1").version == 2

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, None])
    def test_invalid_amount(self, ledger, amount):
        with pytest.raises(RewardmanError) as exc_info:
            ledger.credit("user-1", amount, LedgerReason.REVIEW_BONUS)
        assert exc_info.value.code == "INVALID_AMOUNT"
        assert not LedgerEntry.objects.exists()

    @pytest.mark.parametrize("reason", [LedgerReason.REDEMPTION, LedgerReason.REFUND, "gift"])
    def test_invalid_reason(self, ledger, reason):
        with pytest.raises(RewardmanError) as exc_info:
            ledger.credit("user-1", 10, reason)
        assert exc_info.value.code == "INVALID_REASON"
        assert ledger.get_balance("user-1") == 0

    def test_credit_sends_signal(self, ledger, django_capture_on_commit_callbacks):
        received = []

        def handler(sender, entry, **kwargs):
            received.append(entry)

        points_credited.connect(handler)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                entry = ledger.credit("user-1", 10, LedgerReason.REVIEW_BONUS)
        finally:
            points_credited.disconnect(handler)

        assert received == [entry]


class TestDebit:
    """Tests for PointsLedger.debit()."""

    def test_debit(self, ledger, fund):
        fund("user-1", 100)
        voucher_id = uuid.uuid4()

        entry = ledger.debit("user-1", 40, related_voucher_id=voucher_id)

        assert entry.delta == -40
        assert entry.reason == LedgerReason.REDEMPTION
        assert entry.balance_after == 60
        assert entry.related_voucher_id == voucher_id
        account = PointBalance.objects.get(user_id="user-1")
        assert account.balance == 60
        assert account.lifetime_points == 100

    def test_debit_whole_balance(self, ledger, fund):
        fund("user-1", 40)
        ledger.debit("user-1", 40)
        assert ledger.get_balance("user-1") == 0

    def test_insufficient_balance(self, ledger, fund):
        fund("user-1", 30)

        with pytest.raises(RewardmanError) as exc_info:
            ledger.debit("user-1", 40)

        assert exc_info.value.code == "INSUFFICIENT_BALANCE"
        assert exc_info.value.data["available"] == 30
        assert exc_info.value.data["requested"] == 40
        assert ledger.get_balance("user-1") == 30
        assert LedgerEntry.objects.count() == 1

    def test_debit_unknown_user(self, ledger):
        with pytest.raises(RewardmanError) as exc_info:
            ledger.debit("nobody", 1)
        assert exc_info.value.code == "INSUFFICIENT_BALANCE"
        assert exc_info.value.data["available"] == 0

    def test_debit_rejects_bonus_reason(self, ledger, fund):
        fund("user-1", 100)
        with pytest.raises(RewardmanError) as exc_info:
            ledger.debit("user-1", 10, LedgerReason.REVIEW_BONUS)
        assert exc_info.value.code == "INVALID_REASON"

    def test_admin_adjustment_debit(self, ledger, fund):
        fund("user-1", 100)
        ledger.debit("user-1", 25, LedgerReason.ADMIN_ADJUSTMENT, created_by="ops")
        assert ledger.get_balance("user-1") == 75

    def test_debit_sends_signal(self, ledger, fund, django_capture_on_commit_callbacks):
        fund("user-1", 100)
        received = []

        def handler(sender, entry, **kwargs):
            received.append(entry.delta)

        points_debited.connect(handler)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                ledger.debit("user-1", 40)
        finally:
            points_debited.disconnect(handler)

        assert received == [-40]


class TestRefund:
    """Tests for PointsLedger.refund()."""

    def test_refund_recredits_debit(self, ledger, fund):
        fund("user-1", 100)
        voucher_id = uuid.uuid4()
        ledger.debit("user-1", 40, related_voucher_id=voucher_id)

        entry = ledger.refund(voucher_id)

        assert entry.delta == 40
        assert entry.reason == LedgerReason.REFUND
        assert entry.related_voucher_id == voucher_id
        assert ledger.get_balance("user-1") == 100
        # Refunds do not count as earned points
        assert PointBalance.objects.get(user_id="user-1").lifetime_points == 100

    def test_refund_is_idempotent(self, ledger, fund):
        fund("user-1", 100)
        voucher_id = uuid.uuid4()
        ledger.debit("user-1", 40, related_voucher_id=voucher_id)

        first = ledger.refund(voucher_id)
        second = ledger.refund(voucher_id)

        assert first.pk == second.pk
        assert ledger.get_balance("user-1") == 100
        assert LedgerEntry.objects.filter(reason=LedgerReason.REFUND).count() == 1

    def test_refund_unknown_voucher(self, ledger):
        with pytest.raises(RewardmanError) as exc_info:
            ledger.refund(uuid.uuid4())
        assert exc_info.value.code == "NOT_FOUND"


class TestAward:
    """Tests for PointsLedger.award()."""

    def test_review_bonus(self, ledger):
        entry = ledger.award("user-1", LedgerReason.REVIEW_BONUS, reference="place:7")
        assert entry.delta == 10
        assert entry.reference == "place:7"

    def test_visit_bonus(self, ledger):
        assert ledger.award("user-1", LedgerReason.VISIT_BONUS).delta == 5

    @override_settings(REWARDMAN={"BONUS_POINTS": {"review_bonus": 25}})
    def test_configured_bonus(self, ledger):
        assert ledger.award("user-1", LedgerReason.REVIEW_BONUS).delta == 25
        with pytest.raises(RewardmanError) as exc_info:
            ledger.award("user-1", LedgerReason.VISIT_BONUS)
        assert exc_info.value.code == "INVALID_REASON"

    def test_award_rejects_non_bonus(self, ledger):
        with pytest.raises(RewardmanError) as exc_info:
            ledger.award("user-1", LedgerReason.ADMIN_ADJUSTMENT)
        assert exc_info.value.code == "INVALID_REASON"


class TestHistoryAndAudit:
    """Tests for history() and audit()."""

    def test_history_newest_first(self, ledger, fund):
        fund("user-1", 100)
        ledger.debit("user-1", 40)
        fund("user-2", 7)

        history = ledger.history("user-1")

        assert [e.delta for e in history] == [-40, 100]

    def test_history_limit(self, ledger, fund):
        for _ in range(5):
            fund("user-1", 1)
        assert len(ledger.history("user-1", limit=3)) == 3

    def test_audit_consistent_after_every_step(self, ledger, fund):
        """The balance always equals the sum of the user's entries."""
        voucher_ids = [uuid.uuid4() for _ in range(3)]
        steps = [
            lambda: fund("user-1", 100),
            lambda: ledger.debit("user-1", 40, related_voucher_id=voucher_ids[0]),
            lambda: ledger.award("user-1", LedgerReason.REVIEW_BONUS),
            lambda: ledger.debit("user-1", 60, related_voucher_id=voucher_ids[1]),
            lambda: ledger.refund(voucher_ids[0]),
            lambda: ledger.refund(voucher_ids[0]),
            lambda: ledger.debit("user-1", 10, related_voucher_id=voucher_ids[2]),
        ]

        for step in steps:
            step()
            audit = ledger.audit("user-1")
            assert audit.consistent, audit

        audit = ledger.audit("user-1")
        assert audit.balance == 100 - 40 + 10 - 60 + 40 - 10
        assert audit.entry_count == 6

    def test_audit_after_rejected_debit(self, ledger, fund):
        fund("user-1", 10)
        with pytest.raises(RewardmanError):
            ledger.debit("user-1", 11)
        audit = ledger.audit("user-1")
        assert audit.consistent
        assert audit.entry_count == 1

    def test_audit_unknown_user(self, ledger):
        audit = ledger.audit("nobody")
        assert audit.consistent
        assert audit.entry_count == 0

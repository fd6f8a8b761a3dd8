"""
Concurrency tests for RedemptionEngine.

Real threads against the shared test database. Each thread gets its own
connection and closes it when done.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from rewardman.exceptions import RewardmanError
from rewardman.models import LedgerEntry, LedgerReason, RewardDefinition, Voucher
from rewardman.services import RedemptionEngine


pytestmark = pytest.mark.django_db(transaction=True)


def _run_concurrently(calls):
    """
    Run callables in parallel, released together by a barrier.

    Returns a list with each call's result, or the RewardmanError it raised.
    """
    barrier = threading.Barrier(len(calls))

    def worker(call):
        try:
            barrier.wait()
            return call()
        except RewardmanError as exc:
            return exc
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(worker, calls))


def _redeem_call(user_id, reward_code, request_id):
    def call():
        return RedemptionEngine.default().redeem(user_id, reward_code, request_id=request_id)

    return call


def _codes(results):
    return sorted(r.code for r in results if isinstance(r, RewardmanError))


class TestNoOversell:
    """Stock never goes negative and every unit maps to one voucher."""

    def test_fifty_users_three_units(self, reward_factory, fund):
        reward_factory("pisco-sour", points_cost=40, stock=3)
        users = [f"user-{i}" for i in range(50)]
        for user_id in users:
            fund(user_id, 100)

        results = _run_concurrently(
            [_redeem_call(user_id, "pisco-sour", f"req-{user_id}") for user_id in users]
        )

        successes = [r for r in results if isinstance(r, Voucher)]
        assert len(successes) == 3
        assert _codes(results) == ["OUT_OF_STOCK"] * 47
        assert RewardDefinition.objects.get(code="pisco-sour").stock == 0
        assert Voucher.objects.count() == 3

        ledger = RedemptionEngine.default().ledger
        winners = {v.user_id for v in successes}
        for user_id in users:
            assert ledger.audit(user_id).consistent
            expected = 60 if user_id in winners else 100
            assert ledger.get_balance(user_id) == expected

    def test_two_users_last_unit(self, reward, fund):
        fund("user-1", 100)
        fund("user-2", 100)

        results = _run_concurrently(
            [
                _redeem_call("user-1", "ceviche-2x1", "req-1"),
                _redeem_call("user-2", "ceviche-2x1", "req-2"),
            ]
        )

        assert sum(isinstance(r, Voucher) for r in results) == 1
        assert _codes(results) == ["OUT_OF_STOCK"]
        assert RewardDefinition.objects.get(code="ceviche-2x1").stock == 0


class TestNoOverdraft:
    """Concurrent redemptions by one user never overdraw the balance."""

    def test_one_user_many_requests(self, reward_factory, fund):
        reward_factory("city-tour", points_cost=40, stock=50)
        fund("user-1", 100)

        results = _run_concurrently(
            [_redeem_call("user-1", "city-tour", f"req-{i}") for i in range(10)]
        )

        assert sum(isinstance(r, Voucher) for r in results) == 2
        assert _codes(results) == ["INSUFFICIENT_BALANCE"] * 8

        ledger = RedemptionEngine.default().ledger
        assert ledger.get_balance("user-1") == 20
        assert ledger.audit("user-1").consistent
        assert RewardDefinition.objects.get(code="city-tour").stock == 48


class TestConcurrentRetries:
    """Concurrent calls sharing one request_id redeem once."""

    def test_same_request_id(self, reward_factory, fund):
        reward_factory("city-tour", points_cost=40, stock=5)
        fund("user-1", 100)

        results = _run_concurrently(
            [_redeem_call("user-1", "city-tour", "req-shared") for _ in range(8)]
        )

        assert all(isinstance(r, Voucher) for r in results), results
        assert len({r.id for r in results}) == 1
        assert Voucher.objects.count() == 1
        assert LedgerEntry.objects.filter(reason=LedgerReason.REDEMPTION).count() == 1
        assert RedemptionEngine.default().balance("user-1") == 60
        assert RewardDefinition.objects.get(code="city-tour").stock == 4

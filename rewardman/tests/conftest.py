"""Pytest fixtures for Rewardman tests."""

from datetime import timedelta

import pytest
from django.utils import timezone

from rewardman.models import LedgerReason, Partner, RewardDefinition
from rewardman.services import PointsLedger, RedemptionEngine, RewardCatalog, VoucherStore


@pytest.fixture
def partner(db):
    """Create a test partner."""
    return Partner.objects.create(
        code="la-mar",
        name="La Mar Cebichería",
        category="restaurant",
        address="Av. Mariscal La Mar 770, Miraflores",
    )


def _create_reward(partner, code="ceviche-2x1", points_cost=40, stock=1, **kwargs):
    """Create a reward valid from yesterday until next month."""
    now = timezone.now()
    defaults = {
        "name": "Ceviche 2x1",
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
    }
    defaults.update(kwargs)
    return RewardDefinition.objects.create(
        code=code,
        partner=partner,
        points_cost=points_cost,
        stock=stock,
        **defaults,
    )


@pytest.fixture
def reward(partner):
    """Reward costing 40 points with a single unit of stock."""
    return _create_reward(partner)


@pytest.fixture
def ledger():
    return PointsLedger()


@pytest.fixture
def catalog():
    return RewardCatalog()


@pytest.fixture
def vouchers():
    return VoucherStore()


@pytest.fixture
def engine(ledger, catalog, vouchers):
    return RedemptionEngine(ledger=ledger, catalog=catalog, vouchers=vouchers)


@pytest.fixture
def fund(db, ledger):
    """Credit a user through the ledger: fund("user-1", 100)."""

    def _fund(user_id, amount, reason=LedgerReason.ADMIN_ADJUSTMENT):
        return ledger.credit(user_id, amount, reason)

    return _fund


@pytest.fixture
def reward_factory(partner):
    """Create extra rewards: reward_factory("pisco-sour", stock=3)."""

    def _factory(code, **kwargs):
        return _create_reward(partner, code=code, **kwargs)

    return _factory

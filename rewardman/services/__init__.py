"""Rewardman services.

- ledger: PointsLedger (balances, audit trail)
- catalog: RewardCatalog (definitions, eligibility, stock)
- vouchers: VoucherStore (voucher persistence and state machine)
- redemption: RedemptionEngine (orchestration over the three above)
"""

from rewardman.services.catalog import RewardCatalog
from rewardman.services.ledger import PointsLedger
from rewardman.services.redemption import RedemptionEngine
from rewardman.services.vouchers import VoucherStore

__all__ = ["PointsLedger", "RewardCatalog", "VoucherStore", "RedemptionEngine"]

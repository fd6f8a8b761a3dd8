"""Rewardman models.

- ledger: PointBalance, LedgerEntry, LedgerReason
- catalog: Partner, RewardDefinition
- voucher: Voucher, VoucherState
- redemption_request: RedemptionRequest (idempotency)
"""

from rewardman.models.ledger import PointBalance, LedgerEntry, LedgerReason
from rewardman.models.catalog import Partner, RewardDefinition
from rewardman.models.voucher import Voucher, VoucherState
from rewardman.models.redemption_request import RedemptionRequest, RedemptionStatus

__all__ = [
    # Ledger
    "PointBalance",
    "LedgerEntry",
    "LedgerReason",
    # Catalog
    "Partner",
    "RewardDefinition",
    # Vouchers
    "Voucher",
    "VoucherState",
    # Idempotency
    "RedemptionRequest",
    "RedemptionStatus",
]

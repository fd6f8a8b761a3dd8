"""
Django Rewardman - Points & Rewards Redemption.

Usage:
    from rewardman import RedemptionEngine, RewardmanError

    engine = RedemptionEngine.default()
    engine.ledger.credit("user-1", 100, "review_bonus")
    voucher = engine.redeem("user-1", "ceviche-2x1", request_id="req-123")

    engine.vouchers.present(voucher.id)
    engine.cancel_voucher(voucher.id)
"""


def __getattr__(name):
    if name == "RedemptionEngine":
        from rewardman.services.redemption import RedemptionEngine

        return RedemptionEngine
    if name == "PointsLedger":
        from rewardman.services.ledger import PointsLedger

        return PointsLedger
    if name == "RewardCatalog":
        from rewardman.services.catalog import RewardCatalog

        return RewardCatalog
    if name == "VoucherStore":
        from rewardman.services.vouchers import VoucherStore

        return VoucherStore
    if name == "RewardmanError":
        from rewardman.exceptions import RewardmanError

        return RewardmanError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "RedemptionEngine",
    "PointsLedger",
    "RewardCatalog",
    "VoucherStore",
    "RewardmanError",
]
__version__ = "0.1.0"

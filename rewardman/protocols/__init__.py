"""Rewardman protocols."""

from rewardman.protocols.backends import (
    Eligibility,
    LedgerAudit,
    PointsLedgerBackend,
    RewardCatalogBackend,
    VoucherStoreBackend,
)

__all__ = [
    # Results
    "Eligibility",
    "LedgerAudit",
    # Backends
    "PointsLedgerBackend",
    "RewardCatalogBackend",
    "VoucherStoreBackend",
]

"""
Rewardman configuration.

Usage in settings.py:
    REWARDMAN = {
        "VOUCHER_VALIDITY_DAYS": 30,
        "BONUS_POINTS": {"review_bonus": 10, "visit_bonus": 5},
        "ADMIN_TOKEN": env("REWARDMAN_ADMIN_TOKEN"),
    }
"""

from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


def _default_bonus_points() -> dict[str, int]:
    return {"review_bonus": 10, "visit_bonus": 5}


@dataclass
class RewardmanSettings:
    """Rewardman configuration settings."""

    # Voucher lifetime when the reward has no override
    VOUCHER_VALIDITY_DAYS: int = 30

    # Voucher code shape (prefix + random unambiguous characters)
    VOUCHER_CODE_LENGTH: int = 8
    VOUCHER_CODE_PREFIX: str = "RW-"

    # Points awarded by PointsLedger.award()
    BONUS_POINTS: dict[str, int] = field(default_factory=_default_bonus_points)

    # RedemptionRequest cleanup
    IDEMPOTENCY_RETENTION_DAYS: int = 30

    # Header carrying the authenticated user id (set by the identity provider)
    USER_ID_HEADER: str = "X-User-Id"

    # Shared secrets for administrative and partner endpoints ("" = disabled)
    ADMIN_TOKEN: str = ""
    PARTNER_TOKEN: str = ""

    # Default page size for ledger history
    HISTORY_LIMIT: int = 50


def get_rewardman_settings() -> RewardmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "REWARDMAN", {})
    return RewardmanSettings(**user_settings)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_rewardman_settings(), name)


rewardman_settings = _LazySettings()

"""Rewardman exceptions."""


class RewardmanError(Exception):
    """
    Structured exception for points and redemption operations.

    Every failure carries a stable `code`; callers branch on it and
    translate it for users. Extra keyword arguments become `data`.

    Usage:
        try:
            voucher = engine.redeem("user-1", "ceviche-2x1", request_id="abc")
        except RewardmanError as e:
            if e.code == "OUT_OF_STOCK":
                show_sold_out()
            elif e.retryable:
                retry_later(request_id="abc")
    """

    _default_messages = {
        "INSUFFICIENT_BALANCE": "Insufficient points for redemption",
        "OUT_OF_STOCK": "Reward is out of stock",
        "EXPIRED": "Outside the validity window",
        "NOT_FOUND": "Not found",
        "INVALID_AMOUNT": "Amount must be a positive integer",
        "INVALID_REASON": "Reason not allowed for this operation",
        "INVALID_TRANSITION": "Voucher state transition not allowed",
        "CONFLICT": "Idempotency key reused with different parameters",
        "TRANSIENT": "Temporary failure, retry with the same request id",
    }

    _retryable_codes = frozenset({"TRANSIENT"})

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(f"[{code}] {self.message}")

    @property
    def retryable(self) -> bool:
        return self.code in self._retryable_codes

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data,
            "retryable": self.retryable,
        }

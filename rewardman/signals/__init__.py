"""
Rewardman signals: public event API.

Emitted signals:
- points_credited: Emitted by PointsLedger.credit() and refund()
- points_debited: Emitted by PointsLedger.debit()
- voucher_issued: Emitted by RedemptionEngine.redeem()
- voucher_transitioned: Emitted by VoucherStore.transition()
- voucher_cancelled: Emitted by RedemptionEngine.cancel_voucher()
"""

from django.dispatch import Signal

# Ledger signals (emitted by services)
points_credited = Signal()  # sender=LedgerEntry, entry=LedgerEntry
points_debited = Signal()  # sender=LedgerEntry, entry=LedgerEntry

# Voucher signals
voucher_issued = Signal()  # sender=Voucher, voucher=Voucher
voucher_transitioned = Signal()  # sender=Voucher, voucher=Voucher, from_state=str
voucher_cancelled = Signal()  # sender=Voucher, voucher=Voucher, refund=LedgerEntry

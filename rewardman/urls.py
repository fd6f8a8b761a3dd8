from django.urls import path

from . import views

app_name = "rewardman"

urlpatterns = [
    path("balance/", views.BalanceView.as_view(), name="balance"),
    path("ledger/", views.LedgerView.as_view(), name="ledger"),
    path("partners/", views.PartnerListView.as_view(), name="partners"),
    path("rewards/", views.RewardListView.as_view(), name="rewards"),
    path("rewards/<slug:code>/", views.RewardDetailView.as_view(), name="reward-detail"),
    path("rewards/<slug:code>/redeem/", views.RedeemView.as_view(), name="redeem"),
    path("vouchers/", views.VoucherListView.as_view(), name="vouchers"),
    path("vouchers/<uuid:voucher_id>/", views.VoucherDetailView.as_view(), name="voucher-detail"),
    path("vouchers/<uuid:voucher_id>/present/", views.VoucherPresentView.as_view(), name="voucher-present"),
    path("vouchers/<uuid:voucher_id>/consume/", views.VoucherConsumeView.as_view(), name="voucher-consume"),
    path("vouchers/<uuid:voucher_id>/cancel/", views.VoucherCancelView.as_view(), name="voucher-cancel"),
]

from django.urls import path

from payments.views import (
    ApproveRequestView,
    AssignApprenticeView,
    BankAccountsView,
    BulkApproveView,
    BulkRejectView,
    CreateFundingRequestView,
    CreateSubscriptionRequestView,
    CreateWithdrawalRequestView,
    DeliverView,
    DisputeView,
    EscrowDetailView,
    EscrowListView,
    FundEscrowView,
    LedgerEntryListView,
    PaymentRequestDetailView,
    PaymentRequestListView,
    PaymentStatsView,
    RefundEscrowView,
    RejectRequestView,
    ReleaseEscrowView,
    WalletDetailView,
)

urlpatterns = [
    path("wallets/<uuid:user_id>/", WalletDetailView.as_view(), name="wallet-detail"),
    path(
        "wallets/<uuid:user_id>/ledger/",
        LedgerEntryListView.as_view(),
        name="wallet-ledger",
    ),
    path("bank-accounts/", BankAccountsView.as_view(), name="bank-accounts"),
    path("requests/", PaymentRequestListView.as_view(), name="request-list"),
    path(
        "requests/funding/",
        CreateFundingRequestView.as_view(),
        name="request-funding",
    ),
    path(
        "requests/withdrawal/",
        CreateWithdrawalRequestView.as_view(),
        name="request-withdrawal",
    ),
    path(
        "requests/subscription/",
        CreateSubscriptionRequestView.as_view(),
        name="request-subscription",
    ),
    path("requests/bulk-approve", BulkApproveView.as_view(), name="request-bulk-approve"),
    path("requests/bulk-reject", BulkRejectView.as_view(), name="request-bulk-reject"),
    path(
        "requests/<uuid:uuid>/",
        PaymentRequestDetailView.as_view(),
        name="request-detail",
    ),
    path(
        "requests/<uuid:uuid>/approve",
        ApproveRequestView.as_view(),
        name="request-approve",
    ),
    path(
        "requests/<uuid:uuid>/reject",
        RejectRequestView.as_view(),
        name="request-reject",
    ),
    path("escrow/", EscrowListView.as_view(), name="escrow-list"),
    path("escrow/fund", FundEscrowView.as_view(), name="escrow-fund"),
    path("escrow/<uuid:uuid>/", EscrowDetailView.as_view(), name="escrow-detail"),
    path(
        "escrow/<uuid:uuid>/assign",
        AssignApprenticeView.as_view(),
        name="escrow-assign",
    ),
    path("escrow/<uuid:uuid>/deliver", DeliverView.as_view(), name="escrow-deliver"),
    path("escrow/<uuid:uuid>/dispute", DisputeView.as_view(), name="escrow-dispute"),
    path(
        "escrow/<uuid:uuid>/release",
        ReleaseEscrowView.as_view(),
        name="escrow-release",
    ),
    path("escrow/<uuid:uuid>/refund", RefundEscrowView.as_view(), name="escrow-refund"),
    path("stats/", PaymentStatsView.as_view(), name="payment-stats"),
]

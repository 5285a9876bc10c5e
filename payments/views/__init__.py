from payments.views.wallet import BankAccountsView, LedgerEntryListView, WalletDetailView
from payments.views.payment_request import (
    ApproveRequestView,
    BulkApproveView,
    BulkRejectView,
    CreateFundingRequestView,
    CreateSubscriptionRequestView,
    CreateWithdrawalRequestView,
    PaymentRequestDetailView,
    PaymentRequestListView,
    RejectRequestView,
)
from payments.views.escrow import (
    AssignApprenticeView,
    DeliverView,
    DisputeView,
    EscrowDetailView,
    EscrowListView,
    FundEscrowView,
    RefundEscrowView,
    ReleaseEscrowView,
)
from payments.views.stats import PaymentStatsView

__all__ = [
    "WalletDetailView",
    "LedgerEntryListView",
    "BankAccountsView",
    "CreateFundingRequestView",
    "CreateWithdrawalRequestView",
    "CreateSubscriptionRequestView",
    "PaymentRequestListView",
    "PaymentRequestDetailView",
    "ApproveRequestView",
    "RejectRequestView",
    "BulkApproveView",
    "BulkRejectView",
    "FundEscrowView",
    "EscrowListView",
    "EscrowDetailView",
    "AssignApprenticeView",
    "DeliverView",
    "DisputeView",
    "ReleaseEscrowView",
    "RefundEscrowView",
    "PaymentStatsView",
]

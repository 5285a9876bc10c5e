from payments.serializers.wallet import LedgerEntrySerializer, WalletSerializer
from payments.serializers.payment_request import (
    BulkApproveSerializer,
    BulkRejectSerializer,
    CreateFundingRequestSerializer,
    CreateSubscriptionRequestSerializer,
    CreateWithdrawalRequestSerializer,
    DecisionSerializer,
    PaymentRequestFilterSerializer,
    PaymentRequestSerializer,
    ReasonSerializer,
)
from payments.serializers.escrow import (
    AssignApprenticeSerializer,
    EscrowSerializer,
    FundEscrowSerializer,
)
from payments.serializers.stats import PaymentStatsSerializer

__all__ = [
    "WalletSerializer",
    "LedgerEntrySerializer",
    "PaymentRequestSerializer",
    "PaymentRequestFilterSerializer",
    "CreateFundingRequestSerializer",
    "CreateWithdrawalRequestSerializer",
    "CreateSubscriptionRequestSerializer",
    "DecisionSerializer",
    "BulkApproveSerializer",
    "BulkRejectSerializer",
    "EscrowSerializer",
    "FundEscrowSerializer",
    "AssignApprenticeSerializer",
    "ReasonSerializer",
    "PaymentStatsSerializer",
]

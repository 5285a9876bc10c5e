from payments.models.wallet import Wallet
from payments.models.ledger import LedgerEntry
from payments.models.payment_request import (
    FundingRequest,
    PaymentRequest,
    SubscriptionPaymentRequest,
    WithdrawalRequest,
)
from payments.models.escrow import EscrowTransaction
from payments.models.referral import Referral, ReferralEarning
from payments.models.subscription import Subscription

__all__ = [
    "Wallet",
    "LedgerEntry",
    "PaymentRequest",
    "FundingRequest",
    "WithdrawalRequest",
    "SubscriptionPaymentRequest",
    "EscrowTransaction",
    "Referral",
    "ReferralEarning",
    "Subscription",
]

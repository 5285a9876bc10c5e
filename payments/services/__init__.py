from payments.services.wallet import WalletService
from payments.services.referral import ReferralService
from payments.services.subscription import SubscriptionService
from payments.services.payment_request import PaymentRequestService
from payments.services.escrow import EscrowService
from payments.services.stats import PaymentStatsService

__all__ = [
    "WalletService",
    "ReferralService",
    "SubscriptionService",
    "PaymentRequestService",
    "EscrowService",
    "PaymentStatsService",
]

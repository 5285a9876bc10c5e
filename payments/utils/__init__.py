from payments.utils.bank import mask_account_number, validate_payout_details
from payments.utils.money import (
    current_exchange_rate,
    format_ngn,
    format_points,
    ngn_to_points,
    percentage_of,
    points_to_ngn,
    to_decimal,
)
from payments.utils.notifications import build_notice, dispatch_notification
from payments.utils.storage import discard_proof_of_payment, store_proof_of_payment
from payments.utils.windows import describe_withdrawal_window, is_withdrawal_window_open

__all__ = [
    "build_notice",
    "current_exchange_rate",
    "describe_withdrawal_window",
    "discard_proof_of_payment",
    "dispatch_notification",
    "format_ngn",
    "format_points",
    "is_withdrawal_window_open",
    "mask_account_number",
    "ngn_to_points",
    "percentage_of",
    "points_to_ngn",
    "store_proof_of_payment",
    "to_decimal",
    "validate_payout_details",
]

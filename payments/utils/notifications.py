import logging

import requests

from payments.conf import payment_settings
from payments.utils.money import format_ngn, format_points

logger = logging.getLogger(__name__)

NOTICE_TEMPLATES = {
    "funding_request": (
        "Funding Request Submitted",
        "Your funding request for {amount} has been submitted. Reference: "
        "{reference}. We'll verify and credit your wallet within 24 hours.",
    ),
    "funding_approved": (
        "Wallet Funded Successfully",
        "{amount} has been credited to your wallet. Transaction Reference: "
        "{reference}.",
    ),
    "funding_rejected": (
        "Funding Request Rejected",
        "Your funding request for {amount} was rejected. Reason: {reason}.",
    ),
    "withdrawal_request": (
        "Withdrawal Request Submitted",
        "Your withdrawal request for {points} has been submitted. "
        "Processing time: 1-3 business days.",
    ),
    "withdrawal_approved": (
        "Withdrawal Approved",
        "Your withdrawal request for {points} has been approved. "
        "Bank Transaction ID: {reference}.",
    ),
    "withdrawal_rejected": (
        "Withdrawal Request Rejected",
        "Your withdrawal request for {points} was rejected. Reason: {reason}. "
        "Your points have been returned to your wallet.",
    ),
    "subscription_request": (
        "Subscription Payment Submitted",
        "Your {plan} subscription payment of {amount} has been submitted. "
        "Reference: {reference}.",
    ),
    "subscription_activated": (
        "Subscription Activated",
        "Your {plan} subscription has been activated successfully! "
        "Payment: {amount}.",
    ),
    "subscription_rejected": (
        "Subscription Payment Rejected",
        "Your {plan} subscription payment of {amount} was rejected. "
        "Reason: {reason}.",
    ),
    "escrow_hold": (
        "Funds Held in Escrow",
        "{amount} has been held in escrow for job {job_id}. Funds will be "
        "released upon job completion.",
    ),
    "escrow_released": (
        "Escrow Funds Released",
        "{amount} has been released from escrow for completed job {job_id}. "
        "Funds are now in your wallet.",
    ),
    "escrow_refunded": (
        "Escrow Funds Refunded",
        "{amount} has been refunded from escrow for job {job_id}. "
        "Reason: {reason}.",
    ),
    "referral_earning": (
        "Referral Reward Earned",
        "You earned {points} because someone you referred made a payment.",
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return "N/A"


def build_notice(notice_type: str, context: dict) -> tuple:
    """
    Render the title and message for a notice.

    ``amount`` and ``points`` in ``context`` are formatted as NGN and points;
    missing placeholders render as ``N/A``.
    """
    if notice_type not in NOTICE_TEMPLATES:
        raise ValueError(f"Unknown notice type: {notice_type}")
    title, template = NOTICE_TEMPLATES[notice_type]

    values = _Defaults({k: v for k, v in context.items() if v not in (None, "")})
    if "amount" in values:
        values["amount"] = format_ngn(values["amount"])
    if "points" in values:
        values["points"] = format_points(values["points"])
    return title, template.format_map(values)


def dispatch_notification(
    user_id: str, notice_type: str, title: str, message: str, metadata: dict
) -> dict:
    """
    Deliver a notice to the notification service.

    Handles both HTTP errors and network failures, returning a structured
    result dict for consistent downstream handling. When no webhook is
    configured the notice is only logged.

    Returns:
        dict with keys:
            - success (bool): Whether the notice was accepted or skipped.
            - delivered (bool): Whether it actually reached the service.
            - response (dict): The raw response data or error details.
    """
    url = payment_settings.NOTIFICATION_WEBHOOK_URL
    if not url:
        logger.info(
            "Notification (no dispatcher configured): user=%s type=%s title=%s",
            user_id,
            notice_type,
            title,
        )
        return {"success": True, "delivered": False, "response": {}}

    try:
        response = requests.post(
            url,
            json={
                "user_id": user_id,
                "type": notice_type,
                "title": title,
                "message": message,
                "metadata": metadata,
            },
            timeout=payment_settings.NOTIFICATION_TIMEOUT,
        )
        response.raise_for_status()
    except requests.exceptions.Timeout as exc:
        logger.error(
            "Notification timeout: user=%s type=%s error=%s",
            user_id,
            notice_type,
            str(exc),
        )
        return {
            "success": False,
            "delivered": False,
            "response": {"error": "timeout", "detail": str(exc)},
        }
    except requests.exceptions.RequestException as exc:
        logger.error(
            "Notification request error: user=%s type=%s error=%s",
            user_id,
            notice_type,
            str(exc),
        )
        return {
            "success": False,
            "delivered": False,
            "response": {"error": "request_error", "detail": str(exc)},
        }

    logger.info("Notification delivered: user=%s type=%s", user_id, notice_type)
    return {"success": True, "delivered": True, "response": {"status": response.status_code}}

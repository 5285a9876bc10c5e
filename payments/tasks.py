import logging

from celery import shared_task
from django.db.models import Exists, OuterRef

from payments.exceptions import PaymentError
from payments.models import (
    EscrowTransaction,
    PaymentRequest,
    Referral,
    ReferralEarning,
    SubscriptionPaymentRequest,
)
from payments.services import EscrowService, ReferralService
from payments.utils.notifications import build_notice, dispatch_notification

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def send_notification(self, user_id: str, notice_type: str, context: dict):
    """
    Render a notice and deliver it to the notification service.

    Delivery failures are retried with exponential backoff. An unknown
    notice type is a programming error and is not retried.
    """
    title, message = build_notice(notice_type, context)
    result = dispatch_notification(user_id, notice_type, title, message, context)

    if not result["success"]:
        logger.warning(
            "Notification delivery failed: user=%s type=%s attempt=%d response=%s",
            user_id,
            notice_type,
            self.request.retries + 1,
            result["response"],
        )
        raise self.retry(countdown=2**self.request.retries * 10)

    return {"user_id": user_id, "type": notice_type, "delivered": result["delivered"]}


@shared_task(bind=True, acks_late=True, max_retries=3, default_retry_delay=30)
def release_single_escrow(self, escrow_id: str):
    """
    Auto-release one escrow.

    Uses acks_late=True so the task won't be acknowledged until it completes,
    preventing task loss if the worker crashes mid-release. An escrow that
    was already released, refunded or disputed in the meantime is skipped.
    """
    try:
        logger.info("Auto-releasing escrow=%s", escrow_id)
        escrow = EscrowService.auto_release(escrow_id)
        return {"escrow_id": escrow_id, "status": escrow.status}

    except PaymentError as exc:
        logger.info("Escrow %s not auto-released: %s", escrow_id, exc.message)
        return {"escrow_id": escrow_id, "status": "SKIPPED", "error": exc.code}

    except Exception as exc:
        logger.exception("Unexpected error releasing escrow=%s: %s", escrow_id, str(exc))
        raise self.retry(exc=exc, countdown=2**self.request.retries * 10)


@shared_task
def process_due_escrow_releases():
    """
    Periodic task: find held escrows past their auto-release date and
    dispatch each for individual release.

    Runs via Celery Beat on a configurable interval.
    """
    due_ids = list(
        EscrowTransaction.get_due_for_auto_release().values_list("uuid", flat=True)
    )
    if not due_ids:
        return {"dispatched": 0}

    logger.info("Found %d escrow(s) due for automatic release.", len(due_ids))

    for escrow_id in due_ids:
        release_single_escrow.delay(str(escrow_id))

    return {"dispatched": len(due_ids)}


@shared_task
def reconcile_referral_earnings():
    """
    Periodic task: credit referral earnings that a failed post-commit
    side effect missed. Crediting is idempotent per source record.
    """
    earned = ReferralEarning.objects.filter(source_id=OuterRef("uuid"))

    escrow_ids = (
        EscrowTransaction.objects.filter(
            status=EscrowTransaction.Status.RELEASED, referral_commission_ngn__gt=0
        )
        .exclude(Exists(earned.filter(source_type=ReferralEarning.SourceType.ESCROW)))
        .values_list("uuid", flat=True)
    )
    referred_users = Referral.objects.values("referred_user_id")
    subscription_ids = (
        SubscriptionPaymentRequest.objects.filter(
            status__in=(PaymentRequest.Status.APPROVED, PaymentRequest.Status.COMPLETED),
            user_id__in=referred_users,
        )
        .exclude(
            Exists(earned.filter(source_type=ReferralEarning.SourceType.SUBSCRIPTION))
        )
        .values_list("uuid", flat=True)
    )

    credited = 0
    failed = 0
    for credit, source_ids in (
        (ReferralService.credit_for_escrow, list(escrow_ids)),
        (ReferralService.credit_for_subscription, list(subscription_ids)),
    ):
        for source_id in source_ids:
            try:
                if credit(source_id) is not None:
                    credited += 1
            except Exception:
                failed += 1
                logger.exception("Referral reconciliation failed: source=%s", source_id)

    if credited or failed:
        logger.info("Referral reconciliation: credited=%d failed=%d", credited, failed)
    return {"credited": credited, "failed": failed}

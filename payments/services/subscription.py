import logging
from datetime import timedelta

from django.utils import timezone

from payments.conf import payment_settings
from payments.exceptions import ValidationError
from payments.models import Subscription
from payments.utils.money import to_decimal

logger = logging.getLogger(__name__)


def get_plan(plan_key) -> dict:
    """
    Look up a subscription plan.

    Raises:
        ValidationError: If the plan is not configured.
    """
    plans = payment_settings.SUBSCRIPTION_PLANS
    if plan_key not in plans:
        raise ValidationError(f"Unknown subscription plan: {plan_key}", field="plan_key")
    plan = plans[plan_key]
    return {
        "key": plan_key,
        "amount_ngn": to_decimal(plan["amount_ngn"]),
        "duration_days": int(plan.get("duration_days", 30)),
    }


class SubscriptionService:
    @staticmethod
    def activate(user_id, plan_key, payment_request=None) -> Subscription:
        """
        Activate ``plan_key`` for the user, or extend it if already active.

        Must be called inside the approving transaction.
        """
        plan = get_plan(plan_key)
        now = timezone.now()
        duration = timedelta(days=plan["duration_days"])

        subscription = (
            Subscription.objects.select_for_update().filter(user_id=user_id).first()
        )
        if subscription is None:
            subscription = Subscription.objects.create(
                user_id=user_id,
                plan_key=plan_key,
                activated_at=now,
                expires_at=now + duration,
                last_payment_request=payment_request,
            )
        else:
            if subscription.is_active and subscription.plan_key == plan_key:
                starts = subscription.expires_at
            else:
                starts = now
                subscription.activated_at = now
            subscription.plan_key = plan_key
            subscription.status = Subscription.Status.ACTIVE
            subscription.expires_at = starts + duration
            subscription.last_payment_request = payment_request
            subscription.save()

        logger.info(
            "Subscription activated: user=%s plan=%s expires_at=%s",
            user_id,
            plan_key,
            subscription.expires_at,
        )
        return subscription

"""
Post-commit side effects.

Notifications and referral crediting run only after the state transition
that caused them has committed, and a failure in one of them is logged
and never propagates back into the transition.
"""
import logging
import uuid
from decimal import Decimal

from django.db import transaction

logger = logging.getLogger(__name__)


def after_commit(label, func, *args, **kwargs):
    """Run ``func`` once the current transaction commits, isolating failures."""

    def run():
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Post-commit side effect failed: %s", label)

    transaction.on_commit(run)


def _jsonable(value):
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    return value


def notify(user_id, notice_type, **context):
    """Queue a notice for ``user_id`` after the current transaction commits."""
    from payments.tasks import send_notification

    context = {key: _jsonable(value) for key, value in context.items()}
    after_commit(
        f"notify:{notice_type}",
        send_notification.delay,
        user_id=str(user_id),
        notice_type=notice_type,
        context=context,
    )

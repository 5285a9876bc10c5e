import logging
import uuid

from rest_framework.response import Response

from payments.exceptions import Forbidden, ValidationError

logger = logging.getLogger(__name__)


def error_response(exc):
    """Translate a ``PaymentError`` into the API error body."""
    return Response(exc.as_dict(), status=exc.status_code)


def idempotency_key_from(request):
    """Return the ``Idempotency-Key`` header as a UUID, or ``None``."""
    raw = request.META.get("HTTP_IDEMPOTENCY_KEY")
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationError("Idempotency-Key must be a UUID.", field="idempotency_key")


def ensure_self_or_admin(request, user_id):
    if request.user.is_admin:
        return
    if str(request.user.user_id) != str(user_id):
        raise Forbidden("You can only access your own records.")

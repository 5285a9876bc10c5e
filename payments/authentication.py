import hmac
import logging
import uuid

from rest_framework import authentication, exceptions

from payments.conf import payment_settings

logger = logging.getLogger(__name__)

ROLES = ("member", "apprentice", "admin")


class Principal:
    """The caller identified by the upstream identity gateway."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, user_id, role):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def pk(self):
        return self.user_id

    def __str__(self):
        return f"{self.role}:{self.user_id}"


class GatewayHeaderAuthentication(authentication.BaseAuthentication):
    """
    Trust the ``X-User-Id`` and ``X-User-Role`` headers set by the gateway.

    When ``IDENTITY_GATEWAY_SECRET`` is configured the request must also
    carry a matching ``X-Gateway-Secret`` header.
    """

    def authenticate(self, request):
        raw_user_id = request.META.get("HTTP_X_USER_ID")
        if not raw_user_id:
            return None

        secret = payment_settings.IDENTITY_GATEWAY_SECRET
        if secret:
            supplied = request.META.get("HTTP_X_GATEWAY_SECRET", "")
            if not hmac.compare_digest(supplied, secret):
                logger.warning("Rejected request with invalid gateway secret: user=%s", raw_user_id)
                raise exceptions.AuthenticationFailed("Invalid gateway secret.")

        try:
            user_id = uuid.UUID(raw_user_id)
        except ValueError:
            raise exceptions.AuthenticationFailed("X-User-Id must be a UUID.")

        role = (request.META.get("HTTP_X_USER_ROLE") or "member").lower()
        if role not in ROLES:
            raise exceptions.AuthenticationFailed(f"Unknown role: {role}")

        return Principal(user_id, role), None

    def authenticate_header(self, request):
        return "X-User-Id"

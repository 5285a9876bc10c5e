from django.db import models
from django.utils import timezone

from payments.models.base import BaseModel
from payments.models.payment_request import SubscriptionPaymentRequest


class Subscription(BaseModel):
    """The plan a user is currently entitled to."""

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        EXPIRED = "expired", "Expired"

    user_id = models.UUIDField(unique=True)
    plan_key = models.CharField(max_length=32)
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.ACTIVE
    )
    activated_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    last_payment_request = models.ForeignKey(
        SubscriptionPaymentRequest,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    def __str__(self):
        return f"Subscription {self.user_id} | {self.plan_key} | until {self.expires_at}"

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE and self.expires_at > timezone.now()

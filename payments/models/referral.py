import uuid

from django.db import models
from django.db.models import F, Q

from payments.models.base import BaseModel
from payments.models.wallet import money_field


class Referral(BaseModel):
    """Links a referred user to the user who referred them."""

    referrer_id = models.UUIDField(db_index=True)
    referred_user_id = models.UUIDField(unique=True)

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=~Q(referrer_id=F("referred_user_id")),
                name="referral_not_self",
            ),
        ]

    def __str__(self):
        return f"Referral {self.referrer_id} -> {self.referred_user_id}"


class ReferralEarning(BaseModel):
    """
    Points credited to a referrer because of a referred user's payment.

    One earning per source record, so crediting can be retried safely.
    """

    class SourceType(models.TextChoices):
        SUBSCRIPTION = "subscription", "Subscription payment"
        ESCROW = "escrow", "Escrow release"

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    referrer_id = models.UUIDField(db_index=True)
    referred_user_id = models.UUIDField()
    source_type = models.CharField(max_length=12, choices=SourceType.choices)
    source_id = models.UUIDField()
    amount_ngn = money_field()
    points = money_field()
    exchange_rate_version = models.CharField(max_length=32)

    class Meta(BaseModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["source_type", "source_id"], name="unique_referral_source"
            ),
        ]

    def __str__(self):
        return (
            f"ReferralEarning {self.referrer_id} | {self.source_type} "
            f"{self.source_id} | {self.points} pts"
        )

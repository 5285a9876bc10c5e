import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q

from payments.models.base import BaseModel

ZERO = Decimal("0.00")


def money_field(**kwargs):
    kwargs.setdefault("default", ZERO)
    return models.DecimalField(max_digits=14, decimal_places=2, **kwargs)


class Wallet(BaseModel):
    """
    A user's NGN balance and points.

    Points are split into ``available_points`` and ``locked_points``
    (held by pending withdrawals); ``total_points`` is always their sum.
    Concurrency safety is handled at the service layer via
    select_for_update() and F() expressions.
    """

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    user_id = models.UUIDField(unique=True)
    balance_ngn = money_field()
    available_points = money_field()
    locked_points = money_field()
    total_points = money_field()
    total_deposited = money_field()
    total_withdrawn = money_field()
    total_earned = money_field()

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=Q(balance_ngn__gte=0), name="wallet_balance_non_negative"
            ),
            models.CheckConstraint(
                condition=Q(available_points__gte=0),
                name="wallet_available_points_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(locked_points__gte=0),
                name="wallet_locked_points_non_negative",
            ),
        ]

    def __str__(self):
        return (
            f"Wallet {self.uuid} (user={self.user_id} balance={self.balance_ngn} "
            f"points={self.available_points}/{self.total_points})"
        )

    @property
    def points_balanced(self):
        return self.available_points + self.locked_points == self.total_points

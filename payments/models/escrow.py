import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from payments.models.base import BaseModel
from payments.models.wallet import money_field


class EscrowTransaction(BaseModel):
    """
    Funds a client has committed to a job, held until delivery is accepted.

    HELD moves exactly once to RELEASED (apprentice paid, minus commissions)
    or REFUNDED (client credited in full). Escrows still HELD after
    ``auto_release_date`` with no open dispute are released by the periodic
    sweep.
    """

    class Status(models.TextChoices):
        HELD = "held", "Held"
        RELEASED = "released", "Released"
        REFUNDED = "refunded", "Refunded"

    class FundingSource(models.TextChoices):
        WALLET = "wallet", "Wallet balance"
        EXTERNAL = "external", "External payment"

    class ReleaseTrigger(models.TextChoices):
        CLIENT = "client", "Client approval"
        ADMIN = "admin", "Admin decision"
        AUTO = "auto", "Automatic release"

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    job_id = models.UUIDField(db_index=True)
    client_id = models.UUIDField(db_index=True)
    apprentice_id = models.UUIDField(null=True, blank=True, db_index=True)
    amount_ngn = money_field()
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.HELD
    )
    funding_source = models.CharField(
        max_length=10, choices=FundingSource.choices, default=FundingSource.WALLET
    )
    external_payment_reference = models.CharField(max_length=120, blank=True)
    auto_release_date = models.DateTimeField()
    delivered_at = models.DateTimeField(null=True, blank=True)
    dispute_opened_at = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(blank=True)

    released_at = models.DateTimeField(null=True, blank=True)
    released_by = models.UUIDField(null=True, blank=True)
    release_trigger = models.CharField(
        max_length=10, choices=ReleaseTrigger.choices, blank=True
    )
    platform_commission_ngn = money_field()
    referral_commission_ngn = money_field()
    payout_ngn = money_field()

    refunded_at = models.DateTimeField(null=True, blank=True)
    refunded_by = models.UUIDField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)

    idempotency_key = models.UUIDField(
        unique=True, null=True, blank=True, editable=False
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["job_id"],
                condition=Q(status="held"),
                name="unique_held_escrow_per_job",
            ),
            models.CheckConstraint(
                condition=Q(amount_ngn__gt=0), name="escrow_amount_positive"
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "auto_release_date"], name="idx_escrow_status_release"
            ),
        ]

    def __str__(self):
        return f"Escrow {self.uuid} | job={self.job_id} | {self.amount_ngn} | {self.status}"

    @property
    def is_held(self):
        return self.status == self.Status.HELD

    @property
    def has_open_dispute(self):
        return self.dispute_opened_at is not None

    @classmethod
    def get_due_for_auto_release(cls, now=None):
        """Return held, undisputed, assigned escrows past their release date."""
        return cls.objects.filter(
            status=cls.Status.HELD,
            auto_release_date__lt=now or timezone.now(),
            dispute_opened_at__isnull=True,
            apprentice_id__isnull=False,
        ).order_by("auto_release_date")

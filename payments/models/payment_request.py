import uuid

from django.db import models

from payments.models.base import BaseModel
from payments.models.wallet import money_field


class PaymentRequest(BaseModel):
    """
    Common record for funding, withdrawal and subscription requests.

    Kind-specific fields live on the child tables (multi-table inheritance),
    so every request shares one id space and one ``status`` column that the
    approval services flip with a compare-and-swap update.
    Status moves once from PENDING to a terminal status.
    """

    class Kind(models.TextChoices):
        FUNDING = "funding", "Wallet funding"
        WITHDRAWAL = "withdrawal", "Withdrawal"
        SUBSCRIPTION = "subscription", "Subscription payment"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        COMPLETED = "completed", "Completed"
        REJECTED = "rejected", "Rejected"

    TERMINAL_STATUSES = (Status.APPROVED, Status.COMPLETED, Status.REJECTED)

    uuid = models.UUIDField(
        default=uuid.uuid4, unique=True, editable=False, db_index=True
    )
    user_id = models.UUIDField(db_index=True)
    kind = models.CharField(max_length=12, choices=Kind.choices, editable=False)
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING
    )
    amount_ngn = money_field()
    proof_of_payment_ref = models.CharField(max_length=500, blank=True)
    admin_reference = models.CharField(
        max_length=120,
        blank=True,
        help_text="Bank or transaction reference supplied by the approving admin.",
    )
    admin_notes = models.TextField(blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.UUIDField(null=True, blank=True)
    idempotency_key = models.UUIDField(
        unique=True,
        null=True,
        blank=True,
        editable=False,
        help_text="Client-generated UUID for idempotency.",
    )

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(fields=["kind", "status"], name="idx_request_kind_status"),
            models.Index(fields=["user_id", "status"], name="idx_request_user_status"),
        ]

    def __str__(self):
        return (
            f"PaymentRequest {self.uuid} | {self.kind} | "
            f"{self.amount_ngn} | {self.status}"
        )

    @property
    def is_pending(self):
        return self.status == self.Status.PENDING

    @property
    def details(self):
        """Return the kind-specific child record for this request."""
        child_model = REQUEST_MODELS[self.kind]
        if isinstance(self, child_model):
            return self
        return getattr(self, child_model._meta.model_name)


class FundingRequest(PaymentRequest):
    """A user's claim to have transferred money to a platform bank account."""

    bank_reference = models.CharField(max_length=120, blank=True)
    account_details = models.JSONField(default=dict, blank=True)
    fee_ngn = money_field()
    credited_ngn = money_field(null=True, blank=True, default=None)
    credited_points = money_field(null=True, blank=True, default=None)

    def save(self, *args, **kwargs):
        self.kind = PaymentRequest.Kind.FUNDING
        super().save(*args, **kwargs)


class WithdrawalRequest(PaymentRequest):
    """
    A request to pay points out to a bank account.

    ``total_deduction_points`` (points plus fee) is locked in the wallet when
    the request is created. ``amount_ngn`` and ``ngn_per_point`` snapshot the
    exchange rate in force at creation.
    """

    points_requested = money_field()
    fee_points = money_field()
    total_deduction_points = money_field()
    exchange_rate_version = models.CharField(max_length=32)
    ngn_per_point = money_field()
    payout_details = models.JSONField(default=dict)

    def save(self, *args, **kwargs):
        self.kind = PaymentRequest.Kind.WITHDRAWAL
        super().save(*args, **kwargs)


class SubscriptionPaymentRequest(PaymentRequest):
    class PaymentMethod(models.TextChoices):
        MANUAL = "manual", "Manual"
        BANK_TRANSFER = "bank_transfer", "Bank transfer"
        CARD = "card", "Card"

    plan_key = models.CharField(max_length=32)
    payment_method = models.CharField(
        max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.MANUAL
    )
    payment_reference = models.CharField(max_length=64, unique=True)

    def save(self, *args, **kwargs):
        self.kind = PaymentRequest.Kind.SUBSCRIPTION
        super().save(*args, **kwargs)


REQUEST_MODELS = {
    PaymentRequest.Kind.FUNDING: FundingRequest,
    PaymentRequest.Kind.WITHDRAWAL: WithdrawalRequest,
    PaymentRequest.Kind.SUBSCRIPTION: SubscriptionPaymentRequest,
}

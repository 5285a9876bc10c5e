from django.db import models

from payments.models.base import BaseModel
from payments.models.wallet import Wallet, money_field


class LedgerEntry(BaseModel):
    """
    Append-only record of every balance or points movement.

    Amounts are signed from the wallet's point of view; ``points`` is the
    change in available points. Entries without a wallet belong to the
    platform (fees, commissions, external inflows).
    """

    class EntryType(models.TextChoices):
        FUNDING = "funding", "Wallet funding"
        FUNDING_FEE = "funding_fee", "Funding fee"
        WITHDRAWAL_LOCK = "withdrawal_lock", "Withdrawal lock"
        WITHDRAWAL_UNLOCK = "withdrawal_unlock", "Withdrawal unlock"
        WITHDRAWAL = "withdrawal", "Withdrawal"
        WITHDRAWAL_FEE = "withdrawal_fee", "Withdrawal fee"
        SUBSCRIPTION_PAYMENT = "subscription_payment", "Subscription payment"
        ESCROW_HOLD = "escrow_hold", "Escrow hold"
        ESCROW_RELEASE = "escrow_release", "Escrow release"
        ESCROW_REFUND = "escrow_refund", "Escrow refund"
        PLATFORM_COMMISSION = "platform_commission", "Platform commission"
        REFERRAL_EARNING = "referral_earning", "Referral earning"

    class ReferenceType(models.TextChoices):
        PAYMENT_REQUEST = "payment_request", "Payment request"
        ESCROW = "escrow", "Escrow transaction"
        REFERRAL = "referral", "Referral earning"

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        null=True,
        blank=True,
    )
    entry_type = models.CharField(max_length=24, choices=EntryType.choices)
    amount_ngn = money_field()
    points = money_field()
    reference_type = models.CharField(max_length=20, choices=ReferenceType.choices)
    reference_id = models.UUIDField()
    description = models.CharField(max_length=255, blank=True)

    class Meta(BaseModel.Meta):
        verbose_name_plural = "ledger entries"
        indexes = [
            models.Index(fields=["wallet", "entry_type"], name="idx_ledger_wallet_type"),
            models.Index(
                fields=["reference_type", "reference_id"], name="idx_ledger_reference"
            ),
        ]

    def __str__(self):
        owner = self.wallet_id or "platform"
        return f"{self.entry_type} | {owner} | {self.amount_ngn} NGN | {self.points} pts"

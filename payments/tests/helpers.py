import uuid
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from payments.models import LedgerEntry
from payments.services import EscrowService, WalletService

BANK_DETAILS = {
    "bank_name": "First Bank",
    "account_number": "0123456789",
    "account_name": "Ada Obi",
}


def fund_wallet(user_id, amount):
    """Put NGN on a wallet the way an approved funding request would."""
    with transaction.atomic():
        wallet = WalletService.lock_wallet(user_id)
        WalletService.credit_balance(
            wallet,
            amount,
            LedgerEntry.EntryType.FUNDING,
            LedgerEntry.ReferenceType.PAYMENT_REQUEST,
            uuid.uuid4(),
            total_field="total_deposited",
        )
    return wallet


def give_points(user_id, points):
    with transaction.atomic():
        wallet = WalletService.lock_wallet(user_id)
        WalletService.credit_points(
            wallet,
            points,
            LedgerEntry.EntryType.REFERRAL_EARNING,
            LedgerEntry.ReferenceType.REFERRAL,
            uuid.uuid4(),
        )
    return wallet


def due_escrow(client_id, apprentice_id, amount="20000"):
    """A wallet-funded escrow whose auto-release date has already passed."""
    fund_wallet(client_id, amount)
    return EscrowService.fund_job_escrow(
        client_id=client_id,
        job_id=uuid.uuid4(),
        amount_ngn=amount,
        job_deadline=timezone.now() - timedelta(days=10),
        apprentice_id=apprentice_id,
    )

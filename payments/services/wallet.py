import logging

from django.db.models import F
from django.utils import timezone

from payments.exceptions import InsufficientBalance, NotFound
from payments.models import LedgerEntry, Wallet
from payments.utils.money import ZERO, format_ngn, format_points, to_decimal

logger = logging.getLogger(__name__)


class WalletService:
    """
    Balance and points mutations for wallets.

    Every mutating helper expects to run inside ``transaction.atomic`` with
    the wallet row already locked by ``lock_wallet()``; it applies the change
    with an ``F()`` expression, refreshes the instance, and writes the
    matching ledger entry in the same transaction.
    """

    @staticmethod
    def get_or_create_wallet(user_id) -> Wallet:
        wallet, created = Wallet.objects.get_or_create(user_id=user_id)
        if created:
            logger.info("Wallet created: user=%s wallet=%s", user_id, wallet.uuid)
        return wallet

    @staticmethod
    def get_wallet(user_id) -> Wallet:
        try:
            return Wallet.objects.get(user_id=user_id)
        except Wallet.DoesNotExist:
            raise NotFound(f"Wallet for user {user_id} not found.")

    @staticmethod
    def lock_wallet(user_id) -> Wallet:
        """Return the user's wallet with a row-level lock, creating it if needed."""
        WalletService.get_or_create_wallet(user_id)
        return Wallet.objects.select_for_update().get(user_id=user_id)

    @staticmethod
    def record_entry(
        wallet,
        entry_type,
        reference_type,
        reference_id,
        amount_ngn=ZERO,
        points=ZERO,
        description="",
    ) -> LedgerEntry:
        return LedgerEntry.objects.create(
            wallet=wallet,
            entry_type=entry_type,
            amount_ngn=amount_ngn,
            points=points,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

    @staticmethod
    def _apply(wallet, **changes):
        Wallet.objects.filter(pk=wallet.pk).update(updated_at=timezone.now(), **changes)
        wallet.refresh_from_db()

    @staticmethod
    def add_to_totals(wallet, **amounts) -> Wallet:
        """Increase lifetime counters such as ``total_deposited``."""
        WalletService._apply(
            wallet,
            **{field: F(field) + to_decimal(amount) for field, amount in amounts.items()},
        )
        return wallet

    @staticmethod
    def credit_balance(
        wallet, amount, entry_type, reference_type, reference_id, total_field=None,
        description="",
    ) -> Wallet:
        amount = to_decimal(amount)
        changes = {"balance_ngn": F("balance_ngn") + amount}
        if total_field:
            changes[total_field] = F(total_field) + amount
        WalletService._apply(wallet, **changes)
        WalletService.record_entry(
            wallet, entry_type, reference_type, reference_id,
            amount_ngn=amount, description=description,
        )
        logger.info(
            "Wallet credited: wallet=%s type=%s amount=%s new_balance=%s",
            wallet.uuid,
            entry_type,
            amount,
            wallet.balance_ngn,
        )
        return wallet

    @staticmethod
    def debit_balance(
        wallet, amount, entry_type, reference_type, reference_id, description=""
    ) -> Wallet:
        """
        Raises:
            InsufficientBalance: If the wallet balance is below ``amount``.
        """
        amount = to_decimal(amount)
        if wallet.balance_ngn < amount:
            raise InsufficientBalance(
                f"Insufficient wallet balance. Required: {format_ngn(amount)}, "
                f"available: {format_ngn(wallet.balance_ngn)}."
            )
        updated = Wallet.objects.filter(pk=wallet.pk, balance_ngn__gte=amount).update(
            balance_ngn=F("balance_ngn") - amount, updated_at=timezone.now()
        )
        if updated != 1:
            raise InsufficientBalance("Insufficient wallet balance.")
        wallet.refresh_from_db()
        WalletService.record_entry(
            wallet, entry_type, reference_type, reference_id,
            amount_ngn=-amount, description=description,
        )
        logger.info(
            "Wallet debited: wallet=%s type=%s amount=%s new_balance=%s",
            wallet.uuid,
            entry_type,
            amount,
            wallet.balance_ngn,
        )
        return wallet

    @staticmethod
    def credit_points(
        wallet, points, entry_type, reference_type, reference_id, description=""
    ) -> Wallet:
        points = to_decimal(points)
        WalletService._apply(
            wallet,
            available_points=F("available_points") + points,
            total_points=F("total_points") + points,
        )
        WalletService.record_entry(
            wallet, entry_type, reference_type, reference_id,
            points=points, description=description,
        )
        logger.info(
            "Points credited: wallet=%s type=%s points=%s available=%s",
            wallet.uuid,
            entry_type,
            points,
            wallet.available_points,
        )
        return wallet

    @staticmethod
    def lock_points(wallet, points, reference_id) -> Wallet:
        """
        Move points from available to locked for a pending withdrawal.

        Raises:
            InsufficientBalance: If fewer than ``points`` are available.
        """
        points = to_decimal(points)
        if wallet.available_points < points:
            raise InsufficientBalance(
                f"Insufficient points balance. Required: {format_points(points)}, "
                f"available: {format_points(wallet.available_points)}."
            )
        updated = Wallet.objects.filter(
            pk=wallet.pk, available_points__gte=points
        ).update(
            available_points=F("available_points") - points,
            locked_points=F("locked_points") + points,
            updated_at=timezone.now(),
        )
        if updated != 1:
            raise InsufficientBalance("Insufficient points balance.")
        wallet.refresh_from_db()
        WalletService.record_entry(
            wallet,
            LedgerEntry.EntryType.WITHDRAWAL_LOCK,
            LedgerEntry.ReferenceType.PAYMENT_REQUEST,
            reference_id,
            points=-points,
            description="Moved to locked points",
        )
        logger.info(
            "Points locked: wallet=%s points=%s available=%s locked=%s",
            wallet.uuid,
            points,
            wallet.available_points,
            wallet.locked_points,
        )
        return wallet

    @staticmethod
    def unlock_points(wallet, points, reference_id) -> Wallet:
        points = to_decimal(points)
        WalletService._apply(
            wallet,
            available_points=F("available_points") + points,
            locked_points=F("locked_points") - points,
        )
        WalletService.record_entry(
            wallet,
            LedgerEntry.EntryType.WITHDRAWAL_UNLOCK,
            LedgerEntry.ReferenceType.PAYMENT_REQUEST,
            reference_id,
            points=points,
            description="Returned from locked points",
        )
        logger.info(
            "Points unlocked: wallet=%s points=%s available=%s locked=%s",
            wallet.uuid,
            points,
            wallet.available_points,
            wallet.locked_points,
        )
        return wallet

    @staticmethod
    def consume_locked_points(wallet, points, amount_ngn, reference_id) -> Wallet:
        """Remove locked points from the wallet for good (cash has left)."""
        points = to_decimal(points)
        WalletService._apply(
            wallet,
            locked_points=F("locked_points") - points,
            total_points=F("total_points") - points,
            total_withdrawn=F("total_withdrawn") + to_decimal(amount_ngn),
        )
        logger.info(
            "Locked points consumed: wallet=%s points=%s total=%s",
            wallet.uuid,
            points,
            wallet.total_points,
        )
        return wallet


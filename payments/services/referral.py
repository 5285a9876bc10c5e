import logging

from django.db import transaction

from payments.conf import payment_settings
from payments.exceptions import ValidationError
from payments.models import (
    EscrowTransaction,
    LedgerEntry,
    PaymentRequest,
    Referral,
    ReferralEarning,
    SubscriptionPaymentRequest,
)
from payments.services.side_effects import notify
from payments.services.wallet import WalletService
from payments.utils.money import current_exchange_rate, ngn_to_points, percentage_of

logger = logging.getLogger(__name__)


class ReferralService:
    """
    Referral registration and referral-earning credits.

    Crediting never happens inside a payment approval or escrow release;
    it runs afterwards and is idempotent per source record, so it can be
    retried by the reconciliation task.
    """

    @staticmethod
    def register(referrer_id, referred_user_id) -> Referral:
        if str(referrer_id) == str(referred_user_id):
            raise ValidationError("Users cannot refer themselves.")
        if Referral.objects.filter(referred_user_id=referred_user_id).exists():
            raise ValidationError("This user already has a referrer.")
        referral = Referral.objects.create(
            referrer_id=referrer_id, referred_user_id=referred_user_id
        )
        logger.info(
            "Referral registered: referrer=%s referred=%s",
            referrer_id,
            referred_user_id,
        )
        return referral

    @staticmethod
    def referrer_for(user_id):
        return (
            Referral.objects.filter(referred_user_id=user_id)
            .values_list("referrer_id", flat=True)
            .first()
        )

    @staticmethod
    @transaction.atomic
    def credit_for_subscription(request_uuid):
        """Reward the referrer of a user whose subscription payment was approved."""
        request = SubscriptionPaymentRequest.objects.get(uuid=request_uuid)
        if request.status not in (
            PaymentRequest.Status.APPROVED,
            PaymentRequest.Status.COMPLETED,
        ):
            return None
        referrer_id = ReferralService.referrer_for(request.user_id)
        if referrer_id is None:
            return None
        amount = percentage_of(
            request.amount_ngn, payment_settings.REFERRAL_SUBSCRIPTION_RATE
        )
        return ReferralService._credit(
            referrer_id,
            request.user_id,
            ReferralEarning.SourceType.SUBSCRIPTION,
            request.uuid,
            amount,
        )

    @staticmethod
    @transaction.atomic
    def credit_for_escrow(escrow_uuid):
        """Pay out the referral commission withheld from a released escrow."""
        escrow = EscrowTransaction.objects.get(uuid=escrow_uuid)
        if escrow.status != EscrowTransaction.Status.RELEASED:
            return None
        if escrow.referral_commission_ngn <= 0:
            return None
        referrer_id = ReferralService.referrer_for(escrow.apprentice_id)
        if referrer_id is None:
            logger.warning(
                "Escrow %s withheld referral commission but apprentice %s has no referrer.",
                escrow.uuid,
                escrow.apprentice_id,
            )
            return None
        return ReferralService._credit(
            referrer_id,
            escrow.apprentice_id,
            ReferralEarning.SourceType.ESCROW,
            escrow.uuid,
            escrow.referral_commission_ngn,
        )

    @staticmethod
    def _credit(referrer_id, referred_user_id, source_type, source_id, amount_ngn):
        if amount_ngn <= 0:
            return None

        existing = ReferralEarning.objects.filter(
            source_type=source_type, source_id=source_id
        ).first()
        if existing:
            logger.info(
                "Referral earning already credited: source=%s:%s earning=%s",
                source_type,
                source_id,
                existing.uuid,
            )
            return existing

        exchange_rate = current_exchange_rate()
        points = ngn_to_points(amount_ngn, exchange_rate)
        earning = ReferralEarning.objects.create(
            referrer_id=referrer_id,
            referred_user_id=referred_user_id,
            source_type=source_type,
            source_id=source_id,
            amount_ngn=amount_ngn,
            points=points,
            exchange_rate_version=exchange_rate.version,
        )
        wallet = WalletService.lock_wallet(referrer_id)
        WalletService.credit_points(
            wallet,
            points,
            LedgerEntry.EntryType.REFERRAL_EARNING,
            LedgerEntry.ReferenceType.REFERRAL,
            earning.uuid,
            description=f"Referral reward from {source_type} {source_id}",
        )
        logger.info(
            "Referral earning credited: referrer=%s source=%s:%s amount=%s points=%s",
            referrer_id,
            source_type,
            source_id,
            amount_ngn,
            points,
        )
        notify(referrer_id, "referral_earning", points=points)
        return earning

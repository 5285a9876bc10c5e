import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from payments.conf import payment_settings
from payments.exceptions import (
    AlreadyFinalized,
    Forbidden,
    IdempotencyConflict,
    NotFound,
    PaymentError,
    ValidationError,
)
from payments.models import EscrowTransaction, LedgerEntry
from payments.services.referral import ReferralService
from payments.services.side_effects import after_commit, notify
from payments.services.wallet import WalletService
from payments.utils.money import ZERO, percentage_of, to_decimal

logger = logging.getLogger(__name__)

ESCROW = LedgerEntry.ReferenceType.ESCROW


class EscrowService:
    """
    Job escrow: HELD -> RELEASED | REFUNDED.

    Terminal transitions lock the escrow row and then claim it with a
    compare-and-swap update on ``status='held'``. A client action, an admin
    decision and the auto-release sweep racing on the same escrow therefore
    resolve to exactly one outcome; the others get ``AlreadyFinalized``.
    """

    @staticmethod
    def _replayed_escrow(idempotency_key, client_id, job_id, amount):
        """
        Return the escrow already funded with ``idempotency_key``, if any.

        Raises:
            IdempotencyConflict: If the key was used for another client, job
                or amount.
        """
        if not idempotency_key:
            return None
        existing = EscrowTransaction.objects.filter(idempotency_key=idempotency_key).first()
        if existing is None:
            return None
        if (
            str(existing.client_id) != str(client_id)
            or str(existing.job_id) != str(job_id)
            or existing.amount_ngn != amount
        ):
            logger.warning(
                "Idempotency conflict: key=%s escrow=%s job=%s amount=%s",
                idempotency_key,
                existing.uuid,
                job_id,
                amount,
            )
            raise IdempotencyConflict(
                "Idempotency key was already used for a different escrow.",
                field="idempotency_key",
            )
        logger.info(
            "Idempotent escrow funding: key=%s escrow=%s", idempotency_key, existing.uuid
        )
        return existing

    @staticmethod
    def fund_job_escrow(
        client_id,
        job_id,
        amount_ngn,
        job_deadline=None,
        apprentice_id=None,
        external_payment_reference="",
        idempotency_key=None,
    ) -> EscrowTransaction:
        """
        Hold ``amount_ngn`` for a job.

        Without ``external_payment_reference`` the amount is debited from the
        client's wallet balance in the same transaction that creates the
        escrow. With one, the money was collected elsewhere and only the
        reference is stored.

        Raises:
            ValidationError: If the amount is not positive or the job already
                has held funds.
            InsufficientBalance: If the client's balance is too low.
        """
        amount = to_decimal(amount_ngn)
        if amount <= 0:
            raise ValidationError("Escrow amount must be positive.", field="amount_ngn")
        if apprentice_id and str(apprentice_id) == str(client_id):
            raise ValidationError(
                "Clients cannot assign themselves to their own job.",
                field="apprentice_id",
            )

        existing = EscrowService._replayed_escrow(idempotency_key, client_id, job_id, amount)
        if existing:
            return existing

        external = bool(external_payment_reference)
        grace = timedelta(days=payment_settings.ESCROW_GRACE_PERIOD_DAYS)
        auto_release_date = (job_deadline or timezone.now()) + grace

        with transaction.atomic():
            wallet = None if external else WalletService.lock_wallet(client_id)

            if EscrowTransaction.objects.filter(
                job_id=job_id, status=EscrowTransaction.Status.HELD
            ).exists():
                raise ValidationError(
                    "This job already has funds held in escrow.", field="job_id"
                )
            try:
                with transaction.atomic():
                    escrow = EscrowTransaction.objects.create(
                        job_id=job_id,
                        client_id=client_id,
                        apprentice_id=apprentice_id,
                        amount_ngn=amount,
                        funding_source=(
                            EscrowTransaction.FundingSource.EXTERNAL
                            if external
                            else EscrowTransaction.FundingSource.WALLET
                        ),
                        external_payment_reference=external_payment_reference or "",
                        auto_release_date=auto_release_date,
                        idempotency_key=idempotency_key,
                    )
            except IntegrityError:
                existing = EscrowService._replayed_escrow(
                    idempotency_key, client_id, job_id, amount
                )
                if existing:
                    return existing
                raise ValidationError(
                    "This job already has funds held in escrow.", field="job_id"
                )

            if external:
                WalletService.record_entry(
                    None,
                    LedgerEntry.EntryType.ESCROW_HOLD,
                    ESCROW,
                    escrow.uuid,
                    amount_ngn=amount,
                    description=f"External payment {external_payment_reference}",
                )
            else:
                WalletService.debit_balance(
                    wallet,
                    amount,
                    LedgerEntry.EntryType.ESCROW_HOLD,
                    ESCROW,
                    escrow.uuid,
                    description=f"Held for job {job_id}",
                )
            notify(client_id, "escrow_hold", amount=amount, job_id=job_id)

        logger.info(
            "Escrow funded: escrow=%s job=%s client=%s amount=%s source=%s "
            "auto_release_date=%s",
            escrow.uuid,
            job_id,
            client_id,
            amount,
            escrow.funding_source,
            auto_release_date,
        )
        return escrow

    @staticmethod
    def _lock_held(escrow_id) -> EscrowTransaction:
        try:
            escrow = EscrowTransaction.objects.select_for_update().get(uuid=escrow_id)
        except EscrowTransaction.DoesNotExist:
            raise NotFound(f"Escrow {escrow_id} not found.")
        if not escrow.is_held:
            raise AlreadyFinalized(
                f"Escrow {escrow_id} is already {escrow.status}."
            )
        return escrow

    @staticmethod
    def _claim(escrow, to_status, **fields):
        """Compare-and-swap ``escrow`` from HELD to ``to_status``."""
        updated = EscrowTransaction.objects.filter(
            pk=escrow.pk, status=EscrowTransaction.Status.HELD
        ).update(status=to_status, updated_at=timezone.now(), **fields)
        if updated != 1:
            raise AlreadyFinalized(f"Escrow {escrow.uuid} is already finalized.")

    # ------------------------------------------------------------------
    # Job progress
    # ------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def assign_apprentice(escrow_id, actor_id, apprentice_id, by_admin=False):
        escrow = EscrowService._lock_held(escrow_id)
        if not by_admin and str(actor_id) != str(escrow.client_id):
            raise Forbidden("Only the client can assign an apprentice to this job.")
        if str(apprentice_id) == str(escrow.client_id):
            raise ValidationError(
                "Clients cannot assign themselves to their own job.",
                field="apprentice_id",
            )
        if escrow.apprentice_id:
            if str(escrow.apprentice_id) == str(apprentice_id):
                return escrow
            raise ValidationError(
                "An apprentice is already assigned to this job.", field="apprentice_id"
            )

        escrow.apprentice_id = apprentice_id
        escrow.save(update_fields=["apprentice_id", "updated_at"])
        logger.info(
            "Apprentice assigned: escrow=%s apprentice=%s by=%s",
            escrow.uuid,
            apprentice_id,
            actor_id,
        )
        return escrow

    @staticmethod
    @transaction.atomic
    def mark_delivered(escrow_id, apprentice_id):
        escrow = EscrowService._lock_held(escrow_id)
        if not escrow.apprentice_id or str(escrow.apprentice_id) != str(apprentice_id):
            raise Forbidden("Only the assigned apprentice can mark this job delivered.")
        if escrow.delivered_at is None:
            escrow.delivered_at = timezone.now()
            escrow.save(update_fields=["delivered_at", "updated_at"])
            logger.info("Escrow delivered: escrow=%s apprentice=%s", escrow.uuid, apprentice_id)
        return escrow

    @staticmethod
    @transaction.atomic
    def open_dispute(escrow_id, actor_id, reason, by_admin=False):
        """Stop the escrow from being auto-released until an admin decides."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A dispute reason is required.", field="reason")

        escrow = EscrowService._lock_held(escrow_id)
        parties = {str(escrow.client_id), str(escrow.apprentice_id)}
        if not by_admin and str(actor_id) not in parties:
            raise Forbidden("Only the client or the apprentice can dispute this job.")
        if escrow.has_open_dispute:
            raise ValidationError("A dispute is already open for this job.")

        escrow.dispute_opened_at = timezone.now()
        escrow.dispute_reason = reason
        escrow.save(update_fields=["dispute_opened_at", "dispute_reason", "updated_at"])
        logger.warning(
            "Escrow disputed: escrow=%s by=%s reason=%s", escrow.uuid, actor_id, reason
        )
        return escrow

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    @staticmethod
    def release(
        escrow_id,
        actor_id=None,
        trigger=EscrowTransaction.ReleaseTrigger.ADMIN,
        now=None,
    ) -> EscrowTransaction:
        """
        Pay the apprentice the escrowed amount less commissions.

        The platform commission is recorded on the platform ledger. The
        referral commission, when the apprentice was referred, is withheld
        on the escrow and credited to the referrer after commit.

        Raises:
            NotFound: If no escrow has ``escrow_id``.
            AlreadyFinalized: If the escrow is no longer held.
            Forbidden: If a client releases someone else's escrow.
            ValidationError: If no apprentice is assigned, or an automatic
                release is not yet due or is disputed.
        """
        now = now or timezone.now()
        with transaction.atomic():
            escrow = EscrowService._lock_held(escrow_id)
            if not escrow.apprentice_id:
                raise ValidationError("No apprentice is assigned to this job.")

            if trigger == EscrowTransaction.ReleaseTrigger.CLIENT:
                if str(actor_id) != str(escrow.client_id):
                    raise Forbidden("Only the client can approve this job.")
            elif trigger == EscrowTransaction.ReleaseTrigger.AUTO:
                if escrow.has_open_dispute:
                    raise ValidationError("Disputed escrows are not released automatically.")
                if escrow.auto_release_date >= now:
                    raise ValidationError("Escrow is not yet due for automatic release.")

            platform_commission = percentage_of(
                escrow.amount_ngn, payment_settings.PLATFORM_COMMISSION_RATE
            )
            if ReferralService.referrer_for(escrow.apprentice_id) is not None:
                referral_commission = percentage_of(
                    escrow.amount_ngn, payment_settings.REFERRAL_ESCROW_RATE
                )
            else:
                referral_commission = ZERO
            payout = escrow.amount_ngn - platform_commission - referral_commission

            EscrowService._claim(
                escrow,
                EscrowTransaction.Status.RELEASED,
                released_at=now,
                released_by=actor_id,
                release_trigger=trigger,
                platform_commission_ngn=platform_commission,
                referral_commission_ngn=referral_commission,
                payout_ngn=payout,
            )

            wallet = WalletService.lock_wallet(escrow.apprentice_id)
            WalletService.credit_balance(
                wallet,
                payout,
                LedgerEntry.EntryType.ESCROW_RELEASE,
                ESCROW,
                escrow.uuid,
                total_field="total_earned",
                description=f"Payment for job {escrow.job_id}",
            )
            if platform_commission > 0:
                WalletService.record_entry(
                    None,
                    LedgerEntry.EntryType.PLATFORM_COMMISSION,
                    ESCROW,
                    escrow.uuid,
                    amount_ngn=platform_commission,
                )

            notify(
                escrow.apprentice_id,
                "escrow_released",
                amount=payout,
                job_id=escrow.job_id,
            )
            if referral_commission > 0:
                after_commit(
                    f"referral:escrow:{escrow.uuid}",
                    ReferralService.credit_for_escrow,
                    escrow.uuid,
                )

        logger.info(
            "Escrow released: escrow=%s trigger=%s actor=%s payout=%s "
            "platform_commission=%s referral_commission=%s",
            escrow.uuid,
            trigger,
            actor_id,
            payout,
            platform_commission,
            referral_commission,
        )
        escrow.refresh_from_db()
        return escrow

    @staticmethod
    def refund(escrow_id, actor_id, reason, by_admin=False) -> EscrowTransaction:
        """
        Return the full escrowed amount to the client's wallet balance.

        Clients may refund their own escrow only before work is delivered.

        Raises:
            ValidationError: If ``reason`` is blank or the work was delivered.
            NotFound: If no escrow has ``escrow_id``.
            AlreadyFinalized: If the escrow is no longer held.
            Forbidden: If a client refunds someone else's escrow.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A refund reason is required.", field="reason")

        with transaction.atomic():
            escrow = EscrowService._lock_held(escrow_id)
            if not by_admin:
                if str(actor_id) != str(escrow.client_id):
                    raise Forbidden("Only the client can cancel this job.")
                if escrow.delivered_at is not None:
                    raise ValidationError(
                        "Delivered work can only be refunded by an admin."
                    )

            EscrowService._claim(
                escrow,
                EscrowTransaction.Status.REFUNDED,
                refunded_at=timezone.now(),
                refunded_by=actor_id,
                refund_reason=reason,
            )
            wallet = WalletService.lock_wallet(escrow.client_id)
            WalletService.credit_balance(
                wallet,
                escrow.amount_ngn,
                LedgerEntry.EntryType.ESCROW_REFUND,
                ESCROW,
                escrow.uuid,
                description=f"Refund for job {escrow.job_id}",
            )
            notify(
                escrow.client_id,
                "escrow_refunded",
                amount=escrow.amount_ngn,
                job_id=escrow.job_id,
                reason=reason,
            )

        logger.info(
            "Escrow refunded: escrow=%s actor=%s admin=%s amount=%s reason=%s",
            escrow.uuid,
            actor_id,
            by_admin,
            escrow.amount_ngn,
            reason,
        )
        escrow.refresh_from_db()
        return escrow

    # ------------------------------------------------------------------
    # Auto-release
    # ------------------------------------------------------------------

    @staticmethod
    def auto_release(escrow_id, now=None) -> EscrowTransaction:
        return EscrowService.release(
            escrow_id, actor_id=None, trigger=EscrowTransaction.ReleaseTrigger.AUTO, now=now
        )

    @staticmethod
    def sweep_due_escrows(now=None) -> list:
        """
        Release every held escrow that is past its auto-release date.

        Each escrow is released in its own transaction; a failure is
        recorded and the sweep moves on.
        """
        now = now or timezone.now()
        due_ids = list(
            EscrowTransaction.get_due_for_auto_release(now).values_list("uuid", flat=True)
        )
        logger.info("Auto-release sweep: due=%d", len(due_ids))

        results = []
        for escrow_id in due_ids:
            try:
                EscrowService.auto_release(escrow_id, now=now)
            except PaymentError as exc:
                logger.warning(
                    "Auto-release skipped: escrow=%s code=%s error=%s",
                    escrow_id,
                    exc.code,
                    exc.message,
                )
                results.append(
                    {
                        "id": str(escrow_id),
                        "succeeded": False,
                        "error": exc.code,
                        "detail": exc.message,
                    }
                )
            except Exception as exc:
                logger.exception("Auto-release failed: escrow=%s", escrow_id)
                results.append(
                    {
                        "id": str(escrow_id),
                        "succeeded": False,
                        "error": "internal_error",
                        "detail": str(exc),
                    }
                )
            else:
                results.append(
                    {"id": str(escrow_id), "succeeded": True, "error": None, "detail": ""}
                )
        return results

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def query_escrows(party_id=None, status=None):
        queryset = EscrowTransaction.objects.all()
        if party_id is not None:
            queryset = queryset.filter(Q(client_id=party_id) | Q(apprentice_id=party_id))
        if status:
            queryset = queryset.filter(status=status.lower())
        return queryset

    @staticmethod
    def get_escrow(escrow_id) -> EscrowTransaction:
        try:
            return EscrowTransaction.objects.get(uuid=escrow_id)
        except EscrowTransaction.DoesNotExist:
            raise NotFound(f"Escrow {escrow_id} not found.")

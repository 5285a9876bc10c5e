import logging
import secrets
import time

from django.db import IntegrityError, transaction
from django.utils import timezone

from payments.conf import payment_settings
from payments.exceptions import (
    AlreadyProcessed,
    IdempotencyConflict,
    NotFound,
    PaymentError,
    ValidationError,
    WithdrawalWindowClosedError,
)
from payments.models import (
    FundingRequest,
    LedgerEntry,
    PaymentRequest,
    SubscriptionPaymentRequest,
    WithdrawalRequest,
)
from payments.models.payment_request import REQUEST_MODELS
from payments.services.referral import ReferralService
from payments.services.side_effects import after_commit, notify
from payments.services.subscription import SubscriptionService, get_plan
from payments.services.wallet import WalletService
from payments.utils.bank import validate_payout_details
from payments.utils.money import (
    ZERO,
    ExchangeRate,
    current_exchange_rate,
    format_ngn,
    format_points,
    ngn_to_points,
    percentage_of,
    points_to_ngn,
    to_decimal,
)
from payments.utils.windows import describe_withdrawal_window, is_withdrawal_window_open

logger = logging.getLogger(__name__)

ROLE_MEMBER = "member"
ROLE_APPRENTICE = "apprentice"

PAYMENT_REQUEST = LedgerEntry.ReferenceType.PAYMENT_REQUEST


def generate_subscription_reference(plan_key) -> str:
    safe_key = (plan_key or "plan").upper()
    return f"SUB-{safe_key}-{int(time.time() * 1000)}-{secrets.randbelow(100000):05d}"


def withdrawal_fee_rate(role) -> str:
    return payment_settings.WITHDRAWAL_FEE_RATES.get(role, "0")


class PaymentRequestService:
    """
    Lifecycle of funding, withdrawal and subscription payment requests.

    Creation validates input and, for withdrawals, locks the requested
    points in the same transaction as the request row. Approval and
    rejection lock the request row, re-check that it is still PENDING and
    flip the status with a compare-and-swap update, so one decision is
    applied per request no matter how many admins or retries race on it.
    Notices and referral credits are queued to run after commit.
    """

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def _existing_request(model, idempotency_key, user_id, amount):
        """Return the request already created with ``idempotency_key``, if any."""
        if not idempotency_key:
            return None

        existing = PaymentRequest.objects.filter(idempotency_key=idempotency_key).first()
        if existing is None:
            return None

        if str(existing.user_id) != str(user_id) or not isinstance(existing.details, model):
            raise IdempotencyConflict(
                "Idempotency key was already used for a different request.",
                field="idempotency_key",
            )
        if existing.amount_ngn != amount:
            logger.warning(
                "Idempotency conflict: key=%s existing_amount=%s new_amount=%s",
                idempotency_key,
                existing.amount_ngn,
                amount,
            )

        logger.info(
            "Idempotent %s request: key=%s request=%s",
            existing.kind,
            idempotency_key,
            existing.uuid,
        )
        return existing.details

    @staticmethod
    def _create_once(model, user_id, amount, idempotency_key, **fields):
        """
        Insert a request row, returning ``(request, created)``.

        When a concurrent submission with the same idempotency key commits
        first, the unique index rejects this insert and the stored request
        is returned instead.
        """
        try:
            with transaction.atomic():
                request = model.objects.create(
                    user_id=user_id,
                    amount_ngn=amount,
                    idempotency_key=idempotency_key,
                    **fields,
                )
        except IntegrityError:
            if not idempotency_key:
                raise
            existing = PaymentRequestService._existing_request(
                model, idempotency_key, user_id, amount
            )
            if existing is None:
                raise
            return existing, False
        return request, True

    @staticmethod
    @transaction.atomic
    def create_funding_request(
        user_id,
        amount_ngn,
        bank_reference="",
        account_details=None,
        proof_of_payment_ref="",
        idempotency_key=None,
    ) -> FundingRequest:
        """
        Record a user's claim to have transferred ``amount_ngn`` to the platform.

        No balance changes until an admin approves the request.

        Raises:
            ValidationError: If the amount is below the minimum or a required
                proof of payment is missing.
        """
        amount = to_decimal(amount_ngn)
        if amount <= 0:
            raise ValidationError("Funding amount must be positive.", field="amount_ngn")
        minimum = to_decimal(payment_settings.MIN_FUNDING_NGN)
        if amount < minimum:
            raise ValidationError(
                f"Minimum funding amount is {format_ngn(minimum)}.", field="amount_ngn"
            )
        if payment_settings.FUNDING_PROOF_REQUIRED and not proof_of_payment_ref:
            raise ValidationError(
                "Proof of payment is required for funding requests.",
                field="proof_of_payment",
            )

        existing = PaymentRequestService._existing_request(
            FundingRequest, idempotency_key, user_id, amount
        )
        if existing:
            return existing

        WalletService.get_or_create_wallet(user_id)
        request, created = PaymentRequestService._create_once(
            FundingRequest,
            user_id,
            amount,
            idempotency_key,
            fee_ngn=percentage_of(amount, payment_settings.FUNDING_FEE_RATE),
            bank_reference=bank_reference or "",
            account_details=account_details or {},
            proof_of_payment_ref=proof_of_payment_ref or "",
        )
        if not created:
            return request

        logger.info(
            "Funding request created: user=%s amount=%s request=%s idempotency_key=%s",
            user_id,
            amount,
            request.uuid,
            idempotency_key,
        )
        notify(user_id, "funding_request", amount=amount, reference=bank_reference)
        return request

    @staticmethod
    @transaction.atomic
    def create_withdrawal_request(
        user_id,
        points_requested,
        payout_details,
        role=ROLE_MEMBER,
        proof_of_payment_ref="",
        idempotency_key=None,
    ) -> WithdrawalRequest:
        """
        Request a bank payout of ``points_requested`` points.

        The points plus the role's withdrawal fee are moved from available
        to locked points immediately, so overlapping requests cannot spend
        the same points twice. The NGN value is snapshotted at the current
        exchange rate.

        Raises:
            ValidationError: If the points are below the minimum or the bank
                details are incomplete.
            WithdrawalWindowClosedError: Outside the monthly window.
            InsufficientBalance: If the wallet lacks the available points.
        """
        points = to_decimal(points_requested)
        minimum = to_decimal(payment_settings.MIN_WITHDRAWAL_POINTS)
        if points <= 0 or points < minimum:
            raise ValidationError(
                f"Minimum withdrawal amount is {format_points(minimum)}.",
                field="points_requested",
            )
        payout = validate_payout_details(payout_details)

        exchange_rate = current_exchange_rate()
        amount_ngn = points_to_ngn(points, exchange_rate)

        existing = PaymentRequestService._existing_request(
            WithdrawalRequest, idempotency_key, user_id, amount_ngn
        )
        if existing:
            return existing

        if not is_withdrawal_window_open():
            raise WithdrawalWindowClosedError(
                "Withdrawal requests are only accepted on "
                f"{describe_withdrawal_window()}."
            )

        fee_points = percentage_of(points, withdrawal_fee_rate(role))
        total_points = points + fee_points

        wallet = WalletService.lock_wallet(user_id)
        request, created = PaymentRequestService._create_once(
            WithdrawalRequest,
            user_id,
            amount_ngn,
            idempotency_key,
            points_requested=points,
            fee_points=fee_points,
            total_deduction_points=total_points,
            exchange_rate_version=exchange_rate.version,
            ngn_per_point=exchange_rate.ngn_per_point,
            payout_details=payout,
            proof_of_payment_ref=proof_of_payment_ref or "",
        )
        if not created:
            return request
        WalletService.lock_points(wallet, total_points, request.uuid)

        logger.info(
            "Withdrawal request created: user=%s points=%s fee=%s amount_ngn=%s "
            "rate=%s request=%s",
            user_id,
            points,
            fee_points,
            amount_ngn,
            exchange_rate.version,
            request.uuid,
        )
        notify(user_id, "withdrawal_request", points=points)
        return request

    @staticmethod
    @transaction.atomic
    def create_subscription_payment_request(
        user_id,
        plan_key,
        amount_ngn,
        payment_method=SubscriptionPaymentRequest.PaymentMethod.MANUAL,
        proof_of_payment_ref="",
        idempotency_key=None,
    ) -> SubscriptionPaymentRequest:
        """
        Raises:
            ValidationError: If the plan is unknown or the amount does not
                match the plan price.
        """
        if not plan_key:
            raise ValidationError("Plan key is required.", field="plan_key")
        plan = get_plan(plan_key)
        amount = to_decimal(amount_ngn)
        if amount <= 0:
            raise ValidationError(f"Invalid amount: {amount_ngn}", field="amount_ngn")
        if amount != plan["amount_ngn"]:
            raise ValidationError(
                f"The {plan_key} plan costs {format_ngn(plan['amount_ngn'])}.",
                field="amount_ngn",
            )

        existing = PaymentRequestService._existing_request(
            SubscriptionPaymentRequest, idempotency_key, user_id, amount
        )
        if existing:
            return existing

        request, created = PaymentRequestService._create_once(
            SubscriptionPaymentRequest,
            user_id,
            amount,
            idempotency_key,
            plan_key=plan_key,
            payment_method=payment_method,
            payment_reference=generate_subscription_reference(plan_key),
            proof_of_payment_ref=proof_of_payment_ref or "",
        )
        if not created:
            return request

        logger.info(
            "Subscription payment request created: user=%s plan=%s amount=%s request=%s",
            user_id,
            plan_key,
            amount,
            request.uuid,
        )
        notify(
            user_id,
            "subscription_request",
            plan=plan_key,
            amount=amount,
            reference=request.payment_reference,
        )
        return request

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_pending(request_id) -> PaymentRequest:
        try:
            request = PaymentRequest.objects.select_for_update().get(uuid=request_id)
        except PaymentRequest.DoesNotExist:
            raise NotFound(f"Payment request {request_id} not found.")
        if not request.is_pending:
            raise AlreadyProcessed(
                f"Payment request {request_id} is not pending (status: {request.status})."
            )
        return request

    @staticmethod
    def _transition(request, to_status, admin_id, reference="", notes=""):
        """Compare-and-swap ``request`` from PENDING to ``to_status``."""
        now = timezone.now()
        fields = {
            "status": to_status,
            "processed_at": now,
            "processed_by": admin_id,
            "updated_at": now,
        }
        if reference:
            fields["admin_reference"] = reference
        if notes:
            fields["admin_notes"] = notes

        updated = PaymentRequest.objects.filter(
            pk=request.pk, status=PaymentRequest.Status.PENDING
        ).update(**fields)
        if updated != 1:
            raise AlreadyProcessed(f"Payment request {request.uuid} is not pending.")

    @staticmethod
    def approve_request(admin_id, request_id, reference="", notes="") -> PaymentRequest:
        """
        Approve a pending request and apply its effect on the user's wallet.

        Raises:
            NotFound: If no request has ``request_id``.
            AlreadyProcessed: If the request is no longer pending.
        """
        with transaction.atomic():
            request = PaymentRequestService._lock_pending(request_id)
            details = request.details

            if request.kind == PaymentRequest.Kind.SUBSCRIPTION:
                to_status = PaymentRequest.Status.COMPLETED
            else:
                to_status = PaymentRequest.Status.APPROVED
            PaymentRequestService._transition(
                request, to_status, admin_id, reference=reference, notes=notes
            )

            approve = {
                PaymentRequest.Kind.FUNDING: PaymentRequestService._approve_funding,
                PaymentRequest.Kind.WITHDRAWAL: PaymentRequestService._approve_withdrawal,
                PaymentRequest.Kind.SUBSCRIPTION: PaymentRequestService._approve_subscription,
            }[request.kind]
            approve(details, reference)

        logger.info(
            "Payment request approved: request=%s kind=%s admin=%s reference=%s",
            request.uuid,
            request.kind,
            admin_id,
            reference,
        )
        details.refresh_from_db()
        return details

    @staticmethod
    def _approve_funding(request, reference):
        net = request.amount_ngn - request.fee_ngn
        wallet = WalletService.lock_wallet(request.user_id)

        if payment_settings.FUNDING_CREDIT_MODE == "points":
            points = ngn_to_points(net)
            WalletService.credit_points(
                wallet,
                points,
                LedgerEntry.EntryType.FUNDING,
                PAYMENT_REQUEST,
                request.uuid,
                description=f"Funding of {format_ngn(net)} converted to points",
            )
            credited = {"credited_ngn": ZERO, "credited_points": points}
        else:
            WalletService.credit_balance(
                wallet,
                net,
                LedgerEntry.EntryType.FUNDING,
                PAYMENT_REQUEST,
                request.uuid,
            )
            credited = {"credited_ngn": net, "credited_points": ZERO}
        WalletService.add_to_totals(wallet, total_deposited=request.amount_ngn)

        if request.fee_ngn > 0:
            WalletService.record_entry(
                None,
                LedgerEntry.EntryType.FUNDING_FEE,
                PAYMENT_REQUEST,
                request.uuid,
                amount_ngn=request.fee_ngn,
            )
        FundingRequest.objects.filter(pk=request.pk).update(**credited)
        notify(
            request.user_id,
            "funding_approved",
            amount=net,
            reference=reference or request.bank_reference,
        )

    @staticmethod
    def _approve_withdrawal(request, reference):
        wallet = WalletService.lock_wallet(request.user_id)
        WalletService.consume_locked_points(
            wallet, request.total_deduction_points, request.amount_ngn, request.uuid
        )
        # The wallet gives up points, not NGN; the cash leaves the platform.
        WalletService.record_entry(
            None,
            LedgerEntry.EntryType.WITHDRAWAL,
            PAYMENT_REQUEST,
            request.uuid,
            amount_ngn=-request.amount_ngn,
            points=-request.points_requested,
            description=f"Paid out {format_points(request.points_requested)}",
        )
        if request.fee_points > 0:
            snapshot = ExchangeRate(request.exchange_rate_version, request.ngn_per_point)
            WalletService.record_entry(
                None,
                LedgerEntry.EntryType.WITHDRAWAL_FEE,
                PAYMENT_REQUEST,
                request.uuid,
                amount_ngn=points_to_ngn(request.fee_points, snapshot),
                points=request.fee_points,
            )
        notify(
            request.user_id,
            "withdrawal_approved",
            points=request.points_requested,
            reference=reference,
        )

    @staticmethod
    def _approve_subscription(request, reference):
        SubscriptionService.activate(request.user_id, request.plan_key, request)
        WalletService.record_entry(
            None,
            LedgerEntry.EntryType.SUBSCRIPTION_PAYMENT,
            PAYMENT_REQUEST,
            request.uuid,
            amount_ngn=request.amount_ngn,
            description=f"{request.plan_key} plan for user {request.user_id}",
        )
        notify(
            request.user_id,
            "subscription_activated",
            plan=request.plan_key,
            amount=request.amount_ngn,
        )
        after_commit(
            f"referral:subscription:{request.uuid}",
            ReferralService.credit_for_subscription,
            request.uuid,
        )

    @staticmethod
    def reject_request(admin_id, request_id, reason) -> PaymentRequest:
        """
        Reject a pending request. Locked withdrawal points are returned.

        Raises:
            ValidationError: If ``reason`` is blank.
            NotFound: If no request has ``request_id``.
            AlreadyProcessed: If the request is no longer pending.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required.", field="reason")

        with transaction.atomic():
            request = PaymentRequestService._lock_pending(request_id)
            details = request.details
            PaymentRequestService._transition(
                request, PaymentRequest.Status.REJECTED, admin_id, notes=reason
            )

            if request.kind == PaymentRequest.Kind.WITHDRAWAL:
                wallet = WalletService.lock_wallet(request.user_id)
                WalletService.unlock_points(
                    wallet, details.total_deduction_points, request.uuid
                )
                notify(
                    request.user_id,
                    "withdrawal_rejected",
                    points=details.points_requested,
                    reason=reason,
                )
            elif request.kind == PaymentRequest.Kind.SUBSCRIPTION:
                notify(
                    request.user_id,
                    "subscription_rejected",
                    plan=details.plan_key,
                    amount=request.amount_ngn,
                    reason=reason,
                )
            else:
                notify(
                    request.user_id,
                    "funding_rejected",
                    amount=request.amount_ngn,
                    reason=reason,
                )

        logger.info(
            "Payment request rejected: request=%s kind=%s admin=%s reason=%s",
            request.uuid,
            request.kind,
            admin_id,
            reason,
        )
        details.refresh_from_db()
        return details

    # ------------------------------------------------------------------
    # Bulk decisions
    # ------------------------------------------------------------------

    @staticmethod
    def _run_bulk(action, request_ids, decide):
        results = []
        for request_id in request_ids:
            try:
                decide(request_id)
            except PaymentError as exc:
                logger.warning(
                    "Bulk %s failed: request=%s code=%s error=%s",
                    action,
                    request_id,
                    exc.code,
                    exc.message,
                )
                results.append(
                    {
                        "id": str(request_id),
                        "succeeded": False,
                        "error": exc.code,
                        "detail": exc.message,
                    }
                )
            except Exception as exc:
                logger.exception("Unexpected error in bulk %s: request=%s", action, request_id)
                results.append(
                    {
                        "id": str(request_id),
                        "succeeded": False,
                        "error": "internal_error",
                        "detail": str(exc),
                    }
                )
            else:
                results.append(
                    {"id": str(request_id), "succeeded": True, "error": None, "detail": ""}
                )
        return results

    @staticmethod
    def bulk_approve(admin_id, request_ids, reference="", notes="") -> list:
        """Approve each request independently and report a result per id."""
        return PaymentRequestService._run_bulk(
            "approve",
            request_ids,
            lambda request_id: PaymentRequestService.approve_request(
                admin_id, request_id, reference=reference, notes=notes
            ),
        )

    @staticmethod
    def bulk_reject(admin_id, request_ids, reason) -> list:
        """Reject each request independently and report a result per id."""
        return PaymentRequestService._run_bulk(
            "reject",
            request_ids,
            lambda request_id: PaymentRequestService.reject_request(
                admin_id, request_id, reason
            ),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def query_requests(user_id=None, kind=None, status=None):
        queryset = PaymentRequest.objects.select_related(
            *(model._meta.model_name for model in REQUEST_MODELS.values())
        )
        if user_id is not None:
            queryset = queryset.filter(user_id=user_id)
        if kind:
            queryset = queryset.filter(kind=kind.lower())
        if status:
            queryset = queryset.filter(status=status.lower())
        return queryset

    @staticmethod
    def get_request(request_id) -> PaymentRequest:
        try:
            return PaymentRequest.objects.get(uuid=request_id).details
        except PaymentRequest.DoesNotExist:
            raise NotFound(f"Payment request {request_id} not found.")

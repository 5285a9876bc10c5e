import uuid
from decimal import Decimal
from unittest.mock import patch

from django.db.models import Sum
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone

from payments.exceptions import (
    AlreadyProcessed,
    InsufficientBalance,
    NotFound,
    ValidationError,
    WithdrawalWindowClosedError,
)
from payments.models import (
    LedgerEntry,
    PaymentRequest,
    Referral,
    ReferralEarning,
    Subscription,
    Wallet,
    WithdrawalRequest,
)
from payments.services import PaymentRequestService, WalletService
from payments.tasks import send_notification
from payments.tests.helpers import BANK_DETAILS, give_points

PROOF = "payment-proofs/receipt.png"


def assert_points_balanced(testcase, user_id):
    wallet = Wallet.objects.get(user_id=user_id)
    testcase.assertEqual(
        wallet.available_points + wallet.locked_points, wallet.total_points
    )


def first_lookup_misses():
    """Make the first idempotency lookup miss, as if a concurrent insert had not committed yet."""
    original = PaymentRequestService._existing_request
    calls = []

    def lookup(*args):
        calls.append(args)
        return None if len(calls) == 1 else original(*args)

    return patch.object(PaymentRequestService, "_existing_request", side_effect=lookup)


# ============================================================
# Funding
# ============================================================


class FundingRequestServiceTest(TransactionTestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.admin_id = uuid.uuid4()

    def test_create_leaves_balance_untouched(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "50000", bank_reference="TRF-1", proof_of_payment_ref=PROOF
        )
        self.assertEqual(request.status, PaymentRequest.Status.PENDING)
        self.assertEqual(request.kind, PaymentRequest.Kind.FUNDING)
        self.assertEqual(WalletService.get_wallet(self.user_id).balance_ngn, Decimal("0"))

    def test_create_rejects_bad_amounts(self):
        for amount in ("0", "-5", "999.99"):
            with self.assertRaises(ValidationError):
                PaymentRequestService.create_funding_request(
                    self.user_id, amount, proof_of_payment_ref=PROOF
                )
        self.assertEqual(PaymentRequest.objects.count(), 0)

    def test_create_requires_proof(self):
        with self.assertRaises(ValidationError) as ctx:
            PaymentRequestService.create_funding_request(self.user_id, "5000")
        self.assertEqual(ctx.exception.field, "proof_of_payment")

    @override_settings(FUNDING_PROOF_REQUIRED=False)
    def test_proof_optional_when_configured(self):
        request = PaymentRequestService.create_funding_request(self.user_id, "5000")
        self.assertEqual(request.proof_of_payment_ref, "")

    def test_scenario_c_approve_once(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "50000", proof_of_payment_ref=PROOF
        )
        approved = PaymentRequestService.approve_request(
            self.admin_id, request.uuid, reference="TXN123"
        )

        self.assertEqual(approved.status, PaymentRequest.Status.APPROVED)
        self.assertEqual(approved.admin_reference, "TXN123")
        self.assertEqual(approved.processed_by, self.admin_id)
        self.assertEqual(approved.credited_ngn, Decimal("50000"))
        wallet = WalletService.get_wallet(self.user_id)
        self.assertEqual(wallet.balance_ngn, Decimal("50000"))
        self.assertEqual(wallet.total_deposited, Decimal("50000"))

        with self.assertRaises(AlreadyProcessed):
            PaymentRequestService.approve_request(
                self.admin_id, request.uuid, reference="TXN123"
            )
        wallet.refresh_from_db()
        self.assertEqual(wallet.balance_ngn, Decimal("50000"))
        self.assertEqual(
            LedgerEntry.objects.filter(
                entry_type=LedgerEntry.EntryType.FUNDING, reference_id=request.uuid
            ).count(),
            1,
        )

    def test_reject_after_approve_is_already_processed(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        PaymentRequestService.approve_request(self.admin_id, request.uuid)
        with self.assertRaises(AlreadyProcessed):
            PaymentRequestService.reject_request(self.admin_id, request.uuid, "late")
        request.refresh_from_db()
        self.assertEqual(request.status, PaymentRequest.Status.APPROVED)

    @override_settings(FUNDING_FEE_RATE="0.10")
    def test_fee_goes_to_platform_ledger(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "10000", proof_of_payment_ref=PROOF
        )
        self.assertEqual(request.fee_ngn, Decimal("1000"))
        PaymentRequestService.approve_request(self.admin_id, request.uuid)

        self.assertEqual(
            WalletService.get_wallet(self.user_id).balance_ngn, Decimal("9000")
        )
        fee = LedgerEntry.objects.get(entry_type=LedgerEntry.EntryType.FUNDING_FEE)
        self.assertIsNone(fee.wallet)
        self.assertEqual(fee.amount_ngn, Decimal("1000"))

    @override_settings(FUNDING_CREDIT_MODE="points")
    def test_points_credit_mode(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "15000", proof_of_payment_ref=PROOF
        )
        approved = PaymentRequestService.approve_request(self.admin_id, request.uuid)

        wallet = WalletService.get_wallet(self.user_id)
        self.assertEqual(wallet.balance_ngn, Decimal("0"))
        self.assertEqual(wallet.available_points, Decimal("100"))
        self.assertEqual(wallet.total_deposited, Decimal("15000"))
        self.assertEqual(approved.credited_points, Decimal("100"))
        assert_points_balanced(self, self.user_id)

    def test_reject_requires_reason(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        with self.assertRaises(ValidationError):
            PaymentRequestService.reject_request(self.admin_id, request.uuid, "   ")
        request.refresh_from_db()
        self.assertTrue(request.is_pending)

    def test_reject_funding_request(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        rejected = PaymentRequestService.reject_request(
            self.admin_id, request.uuid, "No matching transfer"
        )
        self.assertEqual(rejected.status, PaymentRequest.Status.REJECTED)
        self.assertEqual(rejected.admin_notes, "No matching transfer")
        self.assertEqual(WalletService.get_wallet(self.user_id).balance_ngn, Decimal("0"))

    def test_unknown_request(self):
        with self.assertRaises(NotFound):
            PaymentRequestService.approve_request(self.admin_id, uuid.uuid4())

    def test_idempotent_create(self):
        key = uuid.uuid4()
        first = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF, idempotency_key=key
        )
        second = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF, idempotency_key=key
        )
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(PaymentRequest.objects.count(), 1)

    def test_idempotency_key_of_another_user(self):
        key = uuid.uuid4()
        PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF, idempotency_key=key
        )
        with self.assertRaises(ValidationError):
            PaymentRequestService.create_funding_request(
                uuid.uuid4(), "5000", proof_of_payment_ref=PROOF, idempotency_key=key
            )

    def test_racing_create_with_same_key_returns_stored_request(self):
        key = uuid.uuid4()
        first = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF, idempotency_key=key
        )
        with first_lookup_misses():
            second = PaymentRequestService.create_funding_request(
                self.user_id, "5000", proof_of_payment_ref=PROOF, idempotency_key=key
            )
        self.assertEqual(second.pk, first.pk)
        self.assertEqual(PaymentRequest.objects.count(), 1)

    def test_stale_read_cannot_approve_twice(self):
        request = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        stale = PaymentRequest.objects.get(uuid=request.uuid)
        PaymentRequestService.approve_request(self.admin_id, request.uuid)

        # A second admin whose read raced the first approval.
        with patch.object(PaymentRequestService, "_lock_pending", return_value=stale):
            with self.assertRaises(AlreadyProcessed):
                PaymentRequestService.approve_request(self.admin_id, request.uuid)

        self.assertEqual(
            WalletService.get_wallet(self.user_id).balance_ngn, Decimal("5000")
        )


# ============================================================
# Withdrawals
# ============================================================


@override_settings(WITHDRAWAL_WINDOW_DAYS=None)
class WithdrawalRequestServiceTest(TransactionTestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.admin_id = uuid.uuid4()
        give_points(self.user_id, "50")

    def _wallet(self):
        return WalletService.get_wallet(self.user_id)

    def test_scenario_a_lock_then_reject(self):
        request = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS
        )
        wallet = self._wallet()
        self.assertEqual(wallet.available_points, Decimal("20"))
        self.assertEqual(wallet.locked_points, Decimal("30"))
        self.assertEqual(request.amount_ngn, Decimal("4500"))
        self.assertEqual(request.exchange_rate_version, "v1")
        assert_points_balanced(self, self.user_id)

        rejected = PaymentRequestService.reject_request(
            self.admin_id, request.uuid, "bad bank details"
        )
        wallet = self._wallet()
        self.assertEqual(rejected.status, PaymentRequest.Status.REJECTED)
        self.assertEqual(wallet.available_points, Decimal("50"))
        self.assertEqual(wallet.locked_points, Decimal("0"))
        assert_points_balanced(self, self.user_id)

    def test_approve_removes_points_for_good(self):
        request = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS
        )
        PaymentRequestService.approve_request(self.admin_id, request.uuid, "BANK-9")

        wallet = self._wallet()
        self.assertEqual(wallet.available_points, Decimal("20"))
        self.assertEqual(wallet.locked_points, Decimal("0"))
        self.assertEqual(wallet.total_points, Decimal("20"))
        self.assertEqual(wallet.total_withdrawn, Decimal("4500"))
        assert_points_balanced(self, self.user_id)

        payout = LedgerEntry.objects.get(entry_type=LedgerEntry.EntryType.WITHDRAWAL)
        self.assertIsNone(payout.wallet)
        self.assertEqual(payout.amount_ngn, Decimal("-4500"))

    def test_wallet_ledger_matches_balances_after_approval(self):
        request = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS
        )
        PaymentRequestService.approve_request(self.admin_id, request.uuid)

        wallet = self._wallet()
        totals = wallet.ledger_entries.aggregate(
            ngn=Sum("amount_ngn"), points=Sum("points")
        )
        self.assertEqual(totals["ngn"], wallet.balance_ngn)
        self.assertEqual(totals["points"], wallet.available_points)

    def test_apprentice_pays_fee_in_points(self):
        request = PaymentRequestService.create_withdrawal_request(
            self.user_id, "40", BANK_DETAILS, role="apprentice"
        )
        self.assertEqual(request.fee_points, Decimal("4"))
        self.assertEqual(request.total_deduction_points, Decimal("44"))
        self.assertEqual(self._wallet().locked_points, Decimal("44"))

        PaymentRequestService.approve_request(self.admin_id, request.uuid)
        fee = LedgerEntry.objects.get(entry_type=LedgerEntry.EntryType.WITHDRAWAL_FEE)
        self.assertIsNone(fee.wallet)
        self.assertEqual(fee.points, Decimal("4"))
        self.assertEqual(fee.amount_ngn, Decimal("600"))
        self.assertEqual(self._wallet().total_points, Decimal("6"))

    def test_insufficient_points_leaves_no_request(self):
        with self.assertRaises(InsufficientBalance):
            PaymentRequestService.create_withdrawal_request(
                self.user_id, "51", BANK_DETAILS
            )
        self.assertEqual(WithdrawalRequest.objects.count(), 0)
        wallet = self._wallet()
        self.assertEqual(wallet.available_points, Decimal("50"))
        self.assertEqual(wallet.locked_points, Decimal("0"))

    def test_racing_create_with_same_key_locks_points_once(self):
        key = uuid.uuid4()
        first = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS, idempotency_key=key
        )
        with first_lookup_misses():
            second = PaymentRequestService.create_withdrawal_request(
                self.user_id, "30", BANK_DETAILS, idempotency_key=key
            )
        self.assertEqual(second.pk, first.pk)
        self.assertEqual(self._wallet().locked_points, Decimal("30"))
        assert_points_balanced(self, self.user_id)

    def test_overlapping_requests_cannot_spend_same_points(self):
        PaymentRequestService.create_withdrawal_request(self.user_id, "30", BANK_DETAILS)
        with self.assertRaises(InsufficientBalance):
            PaymentRequestService.create_withdrawal_request(
                self.user_id, "30", BANK_DETAILS
            )

    def test_below_minimum(self):
        with self.assertRaises(ValidationError):
            PaymentRequestService.create_withdrawal_request(
                self.user_id, "19.99", BANK_DETAILS
            )

    def test_invalid_bank_details(self):
        with self.assertRaises(ValidationError):
            PaymentRequestService.create_withdrawal_request(
                self.user_id, "30", dict(BANK_DETAILS, account_number="123")
            )
        self.assertEqual(self._wallet().locked_points, Decimal("0"))

    def test_window_closed(self):
        closed_day = timezone.localdate().day % 28 + 1
        with override_settings(WITHDRAWAL_WINDOW_DAYS=[closed_day]):
            with self.assertRaises(WithdrawalWindowClosedError):
                PaymentRequestService.create_withdrawal_request(
                    self.user_id, "30", BANK_DETAILS
                )
        self.assertEqual(self._wallet().available_points, Decimal("50"))

    @override_settings(POINTS_EXCHANGE_RATE={"version": "v1", "ngn_per_point": "150"})
    def test_rate_change_does_not_touch_pending_request(self):
        request = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS
        )
        with override_settings(
            POINTS_EXCHANGE_RATE={"version": "v2", "ngn_per_point": "200"}
        ):
            approved = PaymentRequestService.approve_request(self.admin_id, request.uuid)
        self.assertEqual(approved.amount_ngn, Decimal("4500"))
        self.assertEqual(approved.exchange_rate_version, "v1")


# ============================================================
# Subscriptions
# ============================================================


class SubscriptionRequestServiceTest(TransactionTestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.admin_id = uuid.uuid4()

    def test_create_generates_reference(self):
        request = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "basic", "5000"
        )
        self.assertRegex(request.payment_reference, r"^SUB-BASIC-\d+-\d{5}$")
        self.assertEqual(request.kind, PaymentRequest.Kind.SUBSCRIPTION)

    def test_unknown_plan(self):
        with self.assertRaises(ValidationError):
            PaymentRequestService.create_subscription_payment_request(
                self.user_id, "gold", "5000"
            )

    def test_amount_must_match_plan(self):
        with self.assertRaises(ValidationError):
            PaymentRequestService.create_subscription_payment_request(
                self.user_id, "basic", "4000"
            )

    def test_approve_activates_plan(self):
        request = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "pro", "15000"
        )
        approved = PaymentRequestService.approve_request(self.admin_id, request.uuid)

        self.assertEqual(approved.status, PaymentRequest.Status.COMPLETED)
        subscription = Subscription.objects.get(user_id=self.user_id)
        self.assertEqual(subscription.plan_key, "pro")
        self.assertTrue(subscription.is_active)
        self.assertEqual(
            LedgerEntry.objects.get(
                entry_type=LedgerEntry.EntryType.SUBSCRIPTION_PAYMENT
            ).amount_ngn,
            Decimal("15000"),
        )

    def test_renewal_extends_active_plan(self):
        first = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "basic", "5000"
        )
        PaymentRequestService.approve_request(self.admin_id, first.uuid)
        expires = Subscription.objects.get(user_id=self.user_id).expires_at

        second = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "basic", "5000"
        )
        PaymentRequestService.approve_request(self.admin_id, second.uuid)
        renewed = Subscription.objects.get(user_id=self.user_id)
        self.assertEqual((renewed.expires_at - expires).days, 30)

    def test_referrer_is_credited_after_commit(self):
        referrer_id = uuid.uuid4()
        Referral.objects.create(referrer_id=referrer_id, referred_user_id=self.user_id)
        request = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "premium", "30000"
        )
        PaymentRequestService.approve_request(self.admin_id, request.uuid)

        earning = ReferralEarning.objects.get(source_id=request.uuid)
        self.assertEqual(earning.amount_ngn, Decimal("3000"))
        self.assertEqual(earning.points, Decimal("20"))
        wallet = WalletService.get_wallet(referrer_id)
        self.assertEqual(wallet.available_points, Decimal("20"))
        assert_points_balanced(self, referrer_id)

    def test_referral_failure_does_not_undo_approval(self):
        Referral.objects.create(referrer_id=uuid.uuid4(), referred_user_id=self.user_id)
        request = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "basic", "5000"
        )
        with patch(
            "payments.services.referral.ReferralService._credit",
            side_effect=RuntimeError("boom"),
        ):
            PaymentRequestService.approve_request(self.admin_id, request.uuid)

        request.refresh_from_db()
        self.assertEqual(request.status, PaymentRequest.Status.COMPLETED)
        self.assertEqual(ReferralEarning.objects.count(), 0)


# ============================================================
# Bulk decisions and conservation
# ============================================================


@override_settings(WITHDRAWAL_WINDOW_DAYS=None)
class BulkDecisionTest(TransactionTestCase):
    def setUp(self):
        self.admin_id = uuid.uuid4()
        self.user_id = uuid.uuid4()

    def test_bulk_approve_reports_each_request(self):
        ok = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        done = PaymentRequestService.create_funding_request(
            self.user_id, "7000", proof_of_payment_ref=PROOF
        )
        PaymentRequestService.approve_request(self.admin_id, done.uuid)
        missing = uuid.uuid4()

        results = PaymentRequestService.bulk_approve(
            self.admin_id, [ok.uuid, done.uuid, missing]
        )

        by_id = {result["id"]: result for result in results}
        self.assertTrue(by_id[str(ok.uuid)]["succeeded"])
        self.assertEqual(by_id[str(done.uuid)]["error"], "already_processed")
        self.assertEqual(by_id[str(missing)]["error"], "not_found")
        self.assertEqual(
            WalletService.get_wallet(self.user_id).balance_ngn, Decimal("12000")
        )

    def test_bulk_reject_unlocks_each_withdrawal(self):
        give_points(self.user_id, "100")
        first = PaymentRequestService.create_withdrawal_request(
            self.user_id, "30", BANK_DETAILS
        )
        second = PaymentRequestService.create_withdrawal_request(
            self.user_id, "40", BANK_DETAILS
        )

        results = PaymentRequestService.bulk_reject(
            self.admin_id, [first.uuid, second.uuid], "Batch closed"
        )

        self.assertTrue(all(result["succeeded"] for result in results))
        wallet = WalletService.get_wallet(self.user_id)
        self.assertEqual(wallet.available_points, Decimal("100"))
        self.assertEqual(wallet.locked_points, Decimal("0"))

    def test_unexpected_error_does_not_abort_batch(self):
        first = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref=PROOF
        )
        second = PaymentRequestService.create_funding_request(
            self.user_id, "6000", proof_of_payment_ref=PROOF
        )
        original = PaymentRequestService._approve_funding

        def flaky(request, reference):
            if request.uuid == first.uuid:
                raise RuntimeError("database hiccup")
            return original(request, reference)

        with patch.object(PaymentRequestService, "_approve_funding", side_effect=flaky):
            results = PaymentRequestService.bulk_approve(
                self.admin_id, [first.uuid, second.uuid]
            )

        self.assertEqual(results[0]["error"], "internal_error")
        self.assertTrue(results[1]["succeeded"])
        first.refresh_from_db()
        self.assertTrue(first.is_pending)


class NotificationQueueTest(TestCase):
    def test_notice_is_queued_only_on_commit(self):
        user_id = uuid.uuid4()
        with patch.object(send_notification, "delay") as mock_delay:
            with self.captureOnCommitCallbacks(execute=False) as callbacks:
                PaymentRequestService.create_funding_request(
                    user_id, "5000", proof_of_payment_ref=PROOF
                )
            mock_delay.assert_not_called()

            for callback in callbacks:
                callback()

        mock_delay.assert_called_once()
        kwargs = mock_delay.call_args.kwargs
        self.assertEqual(kwargs["user_id"], str(user_id))
        self.assertEqual(kwargs["notice_type"], "funding_request")
        self.assertEqual(kwargs["context"]["amount"], "5000.00")

    def test_notification_failure_is_swallowed(self):
        with patch.object(send_notification, "delay", side_effect=RuntimeError("down")):
            with self.captureOnCommitCallbacks(execute=True):
                request = PaymentRequestService.create_funding_request(
                    uuid.uuid4(), "5000", proof_of_payment_ref=PROOF
                )
        self.assertTrue(request.is_pending)

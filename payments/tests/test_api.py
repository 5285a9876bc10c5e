import os
import shutil
import tempfile
import uuid
from decimal import Decimal

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from payments.models import EscrowTransaction, PaymentRequest, Wallet
from payments.services import EscrowService, PaymentRequestService
from payments.tests.helpers import BANK_DETAILS, fund_wallet, give_points


def client_for(user_id, role="member"):
    client = APIClient()
    client.credentials(HTTP_X_USER_ID=str(user_id), HTTP_X_USER_ROLE=role)
    return client


class AuthenticationAPITest(TestCase):
    def test_missing_identity_is_unauthorized(self):
        response = APIClient().get(reverse("request-list"))
        self.assertEqual(response.status_code, 401)

    def test_malformed_user_id(self):
        client = APIClient()
        client.credentials(HTTP_X_USER_ID="not-a-uuid")
        response = client.get(reverse("request-list"))
        self.assertEqual(response.status_code, 401)

    @override_settings(IDENTITY_GATEWAY_SECRET="s3cret")
    def test_gateway_secret_enforced(self):
        user_id = uuid.uuid4()
        response = client_for(user_id).get(reverse("request-list"))
        self.assertEqual(response.status_code, 401)

        client = client_for(user_id)
        client.credentials(
            HTTP_X_USER_ID=str(user_id), HTTP_X_GATEWAY_SECRET="s3cret"
        )
        self.assertEqual(client.get(reverse("request-list")).status_code, 200)

    def test_admin_endpoints_require_admin_role(self):
        response = client_for(uuid.uuid4()).post(
            reverse("request-approve", args=[uuid.uuid4()]), {}, format="json"
        )
        self.assertEqual(response.status_code, 403)


class RequestLoggingMiddlewareTest(TestCase):
    def setUp(self):
        self.client = client_for(uuid.uuid4())

    def test_account_numbers_are_masked_in_logs(self):
        with self.assertLogs("payments.middleware", level="INFO") as logs:
            self.client.post(
                reverse("request-withdrawal"),
                dict(BANK_DETAILS, points_requested="30"),
                format="json",
            )
        output = "\n".join(logs.output)
        self.assertIn("******6789", output)
        self.assertNotIn("0123456789", output)

    @override_settings(DATA_UPLOAD_MAX_MEMORY_SIZE=64)
    def test_oversized_body_is_rejected(self):
        with self.assertLogs("payments.middleware", level="WARNING"):
            response = self.client.post(
                reverse("request-funding"),
                {"amount_ngn": "5000", "bank_reference": "x" * 200},
                format="json",
            )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json()["code"], "request_too_large")


class WalletAPITest(TestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.client = client_for(self.user_id)

    def test_own_wallet_created_on_first_read(self):
        response = self.client.get(reverse("wallet-detail", args=[self.user_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balance_ngn"], "0.00")
        self.assertTrue(Wallet.objects.filter(user_id=self.user_id).exists())

    def test_other_users_wallet_is_forbidden(self):
        response = self.client.get(reverse("wallet-detail", args=[uuid.uuid4()]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "forbidden")

    def test_admin_reads_any_wallet(self):
        fund_wallet(self.user_id, "2500")
        admin = client_for(uuid.uuid4(), role="admin")
        response = admin.get(reverse("wallet-detail", args=[self.user_id]))
        self.assertEqual(response.data["balance_ngn"], "2500.00")

        missing = admin.get(reverse("wallet-detail", args=[uuid.uuid4()]))
        self.assertEqual(missing.status_code, 404)

    def test_ledger(self):
        fund_wallet(self.user_id, "2500")
        response = self.client.get(reverse("wallet-ledger", args=[self.user_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["entry_type"], "funding")

    @override_settings(
        PLATFORM_BANK_ACCOUNTS=[
            {"bank_name": "GTBank", "account_number": "0011223344", "account_name": "Craftnet"}
        ]
    )
    def test_bank_accounts(self):
        response = self.client.get(reverse("bank-accounts"))
        self.assertEqual(response.data["accounts"][0]["bank_name"], "GTBank")


class FundingRequestAPITest(TestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.client = client_for(self.user_id)
        self.admin = client_for(uuid.uuid4(), role="admin")
        self.media_root = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.media_root, ignore_errors=True)

    def test_create_with_reference(self):
        response = self.client.post(
            reverse("request-funding"),
            {
                "amount_ngn": "50000",
                "bank_reference": "TRF-77",
                "proof_of_payment_ref": "payment-proofs/x.png",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["kind"], "funding")
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["amount_ngn"], "50000.00")

    def test_create_with_uploaded_proof(self):
        upload = SimpleUploadedFile("receipt.png", b"\x89PNG data", content_type="image/png")
        with self.settings(MEDIA_ROOT=self.media_root):
            response = self.client.post(
                reverse("request-funding"),
                {"amount_ngn": "5000", "proof_of_payment": upload},
                format="multipart",
            )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(
            response.data["proof_of_payment_ref"].startswith(
                f"payment-proofs/{self.user_id}/"
            )
        )

    def test_replayed_subscription_discards_new_upload(self):
        key = str(uuid.uuid4())
        responses = []
        with self.settings(MEDIA_ROOT=self.media_root):
            for _ in range(2):
                upload = SimpleUploadedFile(
                    "receipt.png", b"\x89PNG data", content_type="image/png"
                )
                responses.append(
                    self.client.post(
                        reverse("request-subscription"),
                        {"plan_key": "basic", "amount_ngn": "5000", "proof_of_payment": upload},
                        format="multipart",
                        HTTP_IDEMPOTENCY_KEY=key,
                    )
                )

        first, second = responses
        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.data["uuid"], second.data["uuid"])
        stored = os.listdir(os.path.join(self.media_root, "payment-proofs", str(self.user_id)))
        self.assertEqual(len(stored), 1)
        self.assertTrue(first.data["proof_of_payment_ref"].endswith(stored[0]))

    def test_upload_of_wrong_type(self):
        upload = SimpleUploadedFile("notes.txt", b"hello", content_type="text/plain")
        with self.settings(MEDIA_ROOT=self.media_root):
            response = self.client.post(
                reverse("request-funding"),
                {"amount_ngn": "5000", "proof_of_payment": upload},
                format="multipart",
            )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["field"], "proof_of_payment")

    def test_missing_proof(self):
        response = self.client.post(
            reverse("request-funding"), {"amount_ngn": "5000"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "validation_error")

    def test_idempotency_key_header(self):
        key = str(uuid.uuid4())
        payload = {"amount_ngn": "5000", "proof_of_payment_ref": "p.png"}
        first = self.client.post(
            reverse("request-funding"), payload, format="json", HTTP_IDEMPOTENCY_KEY=key
        )
        second = self.client.post(
            reverse("request-funding"), payload, format="json", HTTP_IDEMPOTENCY_KEY=key
        )
        self.assertEqual(first.data["uuid"], second.data["uuid"])
        self.assertEqual(PaymentRequest.objects.count(), 1)

    def test_malformed_idempotency_key(self):
        response = self.client.post(
            reverse("request-funding"),
            {"amount_ngn": "5000", "proof_of_payment_ref": "p.png"},
            format="json",
            HTTP_IDEMPOTENCY_KEY="abc",
        )
        self.assertEqual(response.status_code, 400)

    def test_scenario_c_over_http(self):
        created = self.client.post(
            reverse("request-funding"),
            {"amount_ngn": "50000", "proof_of_payment_ref": "p.png"},
            format="json",
        )
        url = reverse("request-approve", args=[created.data["uuid"]])

        approved = self.admin.post(url, {"reference": "TXN123"}, format="json")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["status"], "approved")
        self.assertEqual(approved.data["admin_reference"], "TXN123")

        again = self.admin.post(url, {"reference": "TXN123"}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_processed")
        wallet = Wallet.objects.get(user_id=self.user_id)
        self.assertEqual(wallet.balance_ngn, Decimal("50000"))

    def test_approve_unknown_request(self):
        response = self.admin.post(
            reverse("request-approve", args=[uuid.uuid4()]), {}, format="json"
        )
        self.assertEqual(response.status_code, 404)

    def test_reject_needs_reason(self):
        created = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref="p.png"
        )
        response = self.admin.post(
            reverse("request-reject", args=[created.uuid]), {}, format="json"
        )
        self.assertEqual(response.status_code, 400)


@override_settings(WITHDRAWAL_WINDOW_DAYS=None)
class WithdrawalRequestAPITest(TestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.client = client_for(self.user_id)
        give_points(self.user_id, "50")

    def test_create_masks_account_number(self):
        response = self.client.post(
            reverse("request-withdrawal"),
            dict(BANK_DETAILS, points_requested="30"),
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["points_requested"], "30.00")
        self.assertEqual(response.data["payout_details"]["account_number"], "******6789")

        wallet = Wallet.objects.get(user_id=self.user_id)
        self.assertEqual(wallet.locked_points, Decimal("30"))

    def test_apprentice_role_pays_fee(self):
        client = client_for(self.user_id, role="apprentice")
        response = client.post(
            reverse("request-withdrawal"),
            dict(BANK_DETAILS, points_requested="30"),
            format="json",
        )
        self.assertEqual(response.data["fee_points"], "3.00")

    def test_insufficient_points(self):
        response = self.client.post(
            reverse("request-withdrawal"),
            dict(BANK_DETAILS, points_requested="60"),
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_balance")

    def test_window_closed(self):
        with self.settings(WITHDRAWAL_WINDOW_DAYS=[32]):
            response = self.client.post(
                reverse("request-withdrawal"),
                dict(BANK_DETAILS, points_requested="30"),
                format="json",
            )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "withdrawal_window_closed")


class RequestListAPITest(TestCase):
    def setUp(self):
        self.user_id = uuid.uuid4()
        self.other_id = uuid.uuid4()
        self.mine = PaymentRequestService.create_funding_request(
            self.user_id, "5000", proof_of_payment_ref="p.png"
        )
        self.subscription = PaymentRequestService.create_subscription_payment_request(
            self.user_id, "basic", "5000"
        )
        self.theirs = PaymentRequestService.create_funding_request(
            self.other_id, "9000", proof_of_payment_ref="p.png"
        )

    def test_user_sees_own_requests(self):
        response = client_for(self.user_id).get(reverse("request-list"))
        self.assertEqual(response.data["count"], 2)
        kinds = {item["kind"] for item in response.data["results"]}
        self.assertEqual(kinds, {"funding", "subscription"})
        subscription = next(
            item for item in response.data["results"] if item["kind"] == "subscription"
        )
        self.assertEqual(subscription["plan_key"], "basic")

    def test_admin_filters(self):
        admin = client_for(uuid.uuid4(), role="admin")
        response = admin.get(reverse("request-list"), {"kind": "funding", "status": "pending"})
        self.assertEqual(response.data["count"], 2)

        response = admin.get(reverse("request-list"), {"user_id": str(self.other_id)})
        self.assertEqual(response.data["count"], 1)

    def test_malformed_filters_are_rejected(self):
        admin = client_for(uuid.uuid4(), role="admin")
        response = admin.get(reverse("request-list"), {"user_id": "not-a-uuid"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("user_id", response.data)

        response = admin.get(reverse("request-list"), {"kind": "refund"})
        self.assertEqual(response.status_code, 400)

    def test_detail_is_owner_only(self):
        url = reverse("request-detail", args=[self.theirs.uuid])
        self.assertEqual(client_for(self.user_id).get(url).status_code, 403)
        self.assertEqual(client_for(self.other_id).get(url).status_code, 200)

    def test_bulk_approve(self):
        admin = client_for(uuid.uuid4(), role="admin")
        response = admin.post(
            reverse("request-bulk-approve"),
            {"ids": [str(self.mine.uuid), str(self.theirs.uuid), str(uuid.uuid4())]},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["succeeded"], 2)
        self.assertEqual(response.data["failed"], 1)
        self.assertEqual(
            Wallet.objects.get(user_id=self.other_id).balance_ngn, Decimal("9000")
        )

    def test_bulk_reject(self):
        admin = client_for(uuid.uuid4(), role="admin")
        response = admin.post(
            reverse("request-bulk-reject"),
            {"ids": [str(self.mine.uuid)], "reason": "Duplicate"},
            format="json",
        )
        self.assertEqual(response.data["succeeded"], 1)
        self.mine.refresh_from_db()
        self.assertEqual(self.mine.status, PaymentRequest.Status.REJECTED)


class PaymentStatsAPITest(TestCase):
    def setUp(self):
        user_id = uuid.uuid4()
        approved = PaymentRequestService.create_funding_request(
            user_id, "5000", proof_of_payment_ref="p.png"
        )
        PaymentRequestService.approve_request(uuid.uuid4(), approved.uuid)
        PaymentRequestService.create_funding_request(
            user_id, "9000", proof_of_payment_ref="p.png"
        )
        PaymentRequestService.create_subscription_payment_request(user_id, "basic", "5000")

        client_id = uuid.uuid4()
        fund_wallet(client_id, "20000")
        EscrowService.fund_job_escrow(client_id, uuid.uuid4(), "20000")

    def test_admin_summary(self):
        response = client_for(uuid.uuid4(), role="admin").get(reverse("payment-stats"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.data["requests"], {"pending": 2, "approved": 1, "rejected": 0}
        )
        self.assertEqual(
            response.data["pending_by_kind"],
            {"funding": 1, "withdrawal": 0, "subscription": 1},
        )
        self.assertEqual(response.data["escrow_held"]["count"], 1)
        self.assertEqual(response.data["escrow_held"]["amount_ngn"], "20000.00")

    def test_members_cannot_read_summary(self):
        response = client_for(uuid.uuid4()).get(reverse("payment-stats"))
        self.assertEqual(response.status_code, 403)


class EscrowAPITest(TestCase):
    def setUp(self):
        self.client_id = uuid.uuid4()
        self.apprentice_id = uuid.uuid4()
        self.owner = client_for(self.client_id)
        self.apprentice = client_for(self.apprentice_id, role="apprentice")
        self.admin = client_for(uuid.uuid4(), role="admin")
        fund_wallet(self.client_id, "200000")

    def _fund(self, **extra):
        payload = {"job_id": str(uuid.uuid4()), "amount_ngn": "150000"}
        payload.update(extra)
        return self.owner.post(reverse("escrow-fund"), payload, format="json")

    def test_scenario_b_over_http(self):
        funded = self._fund(apprentice_id=str(self.apprentice_id))
        self.assertEqual(funded.status_code, 201)
        self.assertEqual(funded.data["status"], "held")
        self.assertEqual(
            Wallet.objects.get(user_id=self.client_id).balance_ngn, Decimal("50000")
        )

        url = reverse("escrow-release", args=[funded.data["uuid"]])
        released = self.admin.post(url, format="json")
        self.assertEqual(released.status_code, 200)
        self.assertEqual(released.data["status"], "released")
        self.assertEqual(released.data["payout_ngn"], "135000.00")

        again = self.admin.post(url, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["code"], "already_finalized")

    def test_client_flow(self):
        funded = self._fund()
        escrow_id = funded.data["uuid"]

        assigned = self.owner.post(
            reverse("escrow-assign", args=[escrow_id]),
            {"apprentice_id": str(self.apprentice_id)},
            format="json",
        )
        self.assertEqual(assigned.data["apprentice_id"], str(self.apprentice_id))

        delivered = self.apprentice.post(reverse("escrow-deliver", args=[escrow_id]))
        self.assertIsNotNone(delivered.data["delivered_at"])

        refund = self.owner.post(
            reverse("escrow-refund", args=[escrow_id]), {"reason": "late"}, format="json"
        )
        self.assertEqual(refund.status_code, 400)

        released = self.owner.post(reverse("escrow-release", args=[escrow_id]))
        self.assertEqual(released.data["release_trigger"], "client")

    def test_dispute(self):
        funded = self._fund(apprentice_id=str(self.apprentice_id))
        response = self.apprentice.post(
            reverse("escrow-dispute", args=[funded.data["uuid"]]),
            {"reason": "Client unresponsive"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.data["dispute_opened_at"])

    def test_member_cannot_record_external_payment(self):
        response = self._fund(external_payment_reference="PAYSTACK-9")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(EscrowTransaction.objects.count(), 0)

    def test_admin_funds_external_escrow_for_client(self):
        response = self.admin.post(
            reverse("escrow-fund"),
            {
                "job_id": str(uuid.uuid4()),
                "amount_ngn": "10000",
                "client_id": str(self.client_id),
                "external_payment_reference": "PAYSTACK-9",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["funding_source"], "external")
        self.assertEqual(
            Wallet.objects.get(user_id=self.client_id).balance_ngn, Decimal("200000")
        )

    def test_insufficient_balance(self):
        response = self._fund(amount_ngn="250000")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "insufficient_balance")

    def test_list_and_detail_are_party_scoped(self):
        funded = self._fund(apprentice_id=str(self.apprentice_id))
        stranger = client_for(uuid.uuid4())

        self.assertEqual(self.owner.get(reverse("escrow-list")).data["count"], 1)
        self.assertEqual(self.apprentice.get(reverse("escrow-list")).data["count"], 1)
        self.assertEqual(stranger.get(reverse("escrow-list")).data["count"], 0)

        url = reverse("escrow-detail", args=[funded.data["uuid"]])
        self.assertEqual(stranger.get(url).status_code, 403)
        self.assertEqual(self.admin.get(url).status_code, 200)

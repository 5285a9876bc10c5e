import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.exceptions import PaymentError
from payments.permissions import IsPlatformAdmin
from payments.serializers import (
    BulkApproveSerializer,
    BulkRejectSerializer,
    CreateFundingRequestSerializer,
    CreateSubscriptionRequestSerializer,
    CreateWithdrawalRequestSerializer,
    DecisionSerializer,
    PaymentRequestFilterSerializer,
    PaymentRequestSerializer,
    ReasonSerializer,
)
from payments.services import PaymentRequestService
from payments.utils.storage import discard_proof_of_payment, store_proof_of_payment
from payments.views.base import ensure_self_or_admin, error_response, idempotency_key_from

logger = logging.getLogger(__name__)


class _ProofUploadMixin:
    def _proof_reference(self, request, validated_data):
        upload = validated_data.get("proof_of_payment")
        if upload is None:
            return validated_data.get("proof_of_payment_ref", ""), False
        return store_proof_of_payment(request.user.user_id, upload), True


class CreateFundingRequestView(_ProofUploadMixin, APIView):
    """
    POST /api/requests/funding/ - Claim a bank transfer to the platform.

    Request body: {"amount_ngn": "50000.00", "bank_reference": "...",
    "account_details": {...}, "proof_of_payment": <file>}
    """

    def post(self, request, *args, **kwargs):
        serializer = CreateFundingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        stored = False
        try:
            idempotency_key = idempotency_key_from(request)
            proof_ref, stored = self._proof_reference(request, data)
            funding = PaymentRequestService.create_funding_request(
                user_id=request.user.user_id,
                amount_ngn=data["amount_ngn"],
                bank_reference=data["bank_reference"],
                account_details=data["account_details"],
                proof_of_payment_ref=proof_ref,
                idempotency_key=idempotency_key,
            )
        except PaymentError as exc:
            if stored:
                discard_proof_of_payment(proof_ref)
            return error_response(exc)

        if stored and funding.proof_of_payment_ref != proof_ref:
            discard_proof_of_payment(proof_ref)
        return Response(
            PaymentRequestSerializer(funding).data, status=status.HTTP_201_CREATED
        )


class CreateWithdrawalRequestView(APIView):
    """
    POST /api/requests/withdrawal/ - Request a bank payout of points.

    Request body: {"points_requested": "30.00", "bank_name": "...",
    "account_number": "0123456789", "account_name": "..."}
    """

    def post(self, request, *args, **kwargs):
        serializer = CreateWithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            withdrawal = PaymentRequestService.create_withdrawal_request(
                user_id=request.user.user_id,
                points_requested=data["points_requested"],
                payout_details={
                    "bank_name": data["bank_name"],
                    "account_number": data["account_number"],
                    "account_name": data["account_name"],
                },
                role=request.user.role,
                idempotency_key=idempotency_key_from(request),
            )
        except PaymentError as exc:
            return error_response(exc)

        return Response(
            PaymentRequestSerializer(withdrawal).data, status=status.HTTP_201_CREATED
        )


class CreateSubscriptionRequestView(_ProofUploadMixin, APIView):
    """POST /api/requests/subscription/ - Pay for a subscription plan."""

    def post(self, request, *args, **kwargs):
        serializer = CreateSubscriptionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        stored = False
        try:
            idempotency_key = idempotency_key_from(request)
            proof_ref, stored = self._proof_reference(request, data)
            subscription = PaymentRequestService.create_subscription_payment_request(
                user_id=request.user.user_id,
                plan_key=data["plan_key"],
                amount_ngn=data["amount_ngn"],
                payment_method=data["payment_method"],
                proof_of_payment_ref=proof_ref,
                idempotency_key=idempotency_key,
            )
        except PaymentError as exc:
            if stored:
                discard_proof_of_payment(proof_ref)
            return error_response(exc)

        if stored and subscription.proof_of_payment_ref != proof_ref:
            discard_proof_of_payment(proof_ref)
        return Response(
            PaymentRequestSerializer(subscription).data, status=status.HTTP_201_CREATED
        )


class PaymentRequestListView(ListAPIView):
    """
    GET /api/requests/ - Payment requests, newest first.

    Admins see every request and may filter by ``user_id``; other callers
    see only their own.

    Query params:
        - kind: funding, withdrawal or subscription
        - status: pending, approved, completed or rejected
    """

    serializer_class = PaymentRequestSerializer

    def get_queryset(self):
        filters = PaymentRequestFilterSerializer(
            data={key: value for key, value in self.request.query_params.items() if value}
        )
        filters.is_valid(raise_exception=True)
        params = filters.validated_data

        if self.request.user.is_admin:
            user_id = params.get("user_id")
        else:
            user_id = self.request.user.user_id
        return PaymentRequestService.query_requests(
            user_id=user_id, kind=params.get("kind"), status=params.get("status")
        )


class PaymentRequestDetailView(APIView):
    """GET /api/requests/<uuid>/ - A single payment request."""

    def get(self, request, uuid, *args, **kwargs):
        try:
            payment_request = PaymentRequestService.get_request(uuid)
            ensure_self_or_admin(request, payment_request.user_id)
        except PaymentError as exc:
            return error_response(exc)
        return Response(PaymentRequestSerializer(payment_request).data)


class ApproveRequestView(APIView):
    """
    POST /api/requests/<uuid>/approve - Approve a pending request.

    Request body: {"reference": "<bank transaction id>", "notes": "..."}
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, uuid, *args, **kwargs):
        serializer = DecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment_request = PaymentRequestService.approve_request(
                admin_id=request.user.user_id,
                request_id=uuid,
                reference=serializer.validated_data["reference"],
                notes=serializer.validated_data["notes"],
            )
        except PaymentError as exc:
            return error_response(exc)

        return Response(PaymentRequestSerializer(payment_request).data)


class RejectRequestView(APIView):
    """POST /api/requests/<uuid>/reject - Reject a pending request with a reason."""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, uuid, *args, **kwargs):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment_request = PaymentRequestService.reject_request(
                admin_id=request.user.user_id,
                request_id=uuid,
                reason=serializer.validated_data["reason"],
            )
        except PaymentError as exc:
            return error_response(exc)

        return Response(PaymentRequestSerializer(payment_request).data)


def _bulk_response(results):
    succeeded = sum(1 for result in results if result["succeeded"])
    return Response(
        {
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results,
        },
        status=status.HTTP_200_OK,
    )


class BulkApproveView(APIView):
    """
    POST /api/requests/bulk-approve - Approve many requests.

    Each id is processed on its own; one failure does not stop the batch.
    Request body: {"ids": ["<uuid>", ...], "reference": "...", "notes": "..."}
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, *args, **kwargs):
        serializer = BulkApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        results = PaymentRequestService.bulk_approve(
            request.user.user_id,
            data["ids"],
            reference=data["reference"],
            notes=data["notes"],
        )
        return _bulk_response(results)


class BulkRejectView(APIView):
    """POST /api/requests/bulk-reject - Reject many requests with one reason."""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def post(self, request, *args, **kwargs):
        serializer = BulkRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        results = PaymentRequestService.bulk_reject(
            request.user.user_id,
            serializer.validated_data["ids"],
            serializer.validated_data["reason"],
        )
        return _bulk_response(results)

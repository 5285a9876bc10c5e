import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.exceptions import Forbidden, PaymentError, ValidationError
from payments.models import EscrowTransaction
from payments.serializers import (
    AssignApprenticeSerializer,
    EscrowSerializer,
    FundEscrowSerializer,
    ReasonSerializer,
)
from payments.services import EscrowService
from payments.views.base import error_response, idempotency_key_from

logger = logging.getLogger(__name__)


class FundEscrowView(APIView):
    """
    POST /api/escrow/fund - Hold funds for a job.

    Request body: {"job_id": "<uuid>", "amount_ngn": "20000.00",
    "job_deadline": "<ISO datetime>", "apprentice_id": "<uuid>"}

    Clients fund from their own wallet balance. Admins may fund on behalf of
    a client (``client_id``) and record an ``external_payment_reference``
    for money collected outside the wallet.
    """

    def post(self, request, *args, **kwargs):
        serializer = FundEscrowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            if request.user.is_admin:
                client_id = data.get("client_id")
                if client_id is None:
                    raise ValidationError("client_id is required.", field="client_id")
            else:
                if data["external_payment_reference"]:
                    raise Forbidden("Only admins can record external escrow payments.")
                client_id = request.user.user_id

            escrow = EscrowService.fund_job_escrow(
                client_id=client_id,
                job_id=data["job_id"],
                amount_ngn=data["amount_ngn"],
                job_deadline=data.get("job_deadline"),
                apprentice_id=data.get("apprentice_id"),
                external_payment_reference=data["external_payment_reference"],
                idempotency_key=idempotency_key_from(request),
            )
        except PaymentError as exc:
            return error_response(exc)

        return Response(EscrowSerializer(escrow).data, status=status.HTTP_201_CREATED)


class EscrowListView(ListAPIView):
    """
    GET /api/escrow/ - Escrows, newest first.

    Admins see all escrows; other callers see escrows where they are the
    client or the apprentice.

    Query params:
        - status: held, released or refunded
    """

    serializer_class = EscrowSerializer

    def get_queryset(self):
        party_id = None if self.request.user.is_admin else self.request.user.user_id
        return EscrowService.query_escrows(
            party_id=party_id, status=self.request.query_params.get("status")
        )


def _ensure_party(request, escrow):
    if request.user.is_admin:
        return
    parties = {str(escrow.client_id), str(escrow.apprentice_id)}
    if str(request.user.user_id) not in parties:
        raise Forbidden("You are not a party to this escrow.")


class EscrowDetailView(APIView):
    """GET /api/escrow/<uuid>/ - A single escrow."""

    def get(self, request, uuid, *args, **kwargs):
        try:
            escrow = EscrowService.get_escrow(uuid)
            _ensure_party(request, escrow)
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)


class AssignApprenticeView(APIView):
    """POST /api/escrow/<uuid>/assign - Client assigns the apprentice."""

    def post(self, request, uuid, *args, **kwargs):
        serializer = AssignApprenticeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            escrow = EscrowService.assign_apprentice(
                uuid,
                request.user.user_id,
                serializer.validated_data["apprentice_id"],
                by_admin=request.user.is_admin,
            )
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)


class DeliverView(APIView):
    """POST /api/escrow/<uuid>/deliver - Apprentice marks the work delivered."""

    def post(self, request, uuid, *args, **kwargs):
        try:
            escrow = EscrowService.mark_delivered(uuid, request.user.user_id)
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)


class DisputeView(APIView):
    """POST /api/escrow/<uuid>/dispute - Hold the escrow for an admin decision."""

    def post(self, request, uuid, *args, **kwargs):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            escrow = EscrowService.open_dispute(
                uuid,
                request.user.user_id,
                serializer.validated_data["reason"],
                by_admin=request.user.is_admin,
            )
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)


class ReleaseEscrowView(APIView):
    """
    POST /api/escrow/<uuid>/release - Pay the apprentice.

    Clients release their own escrow when they accept the work; admins
    release any held escrow.
    """

    def post(self, request, uuid, *args, **kwargs):
        if request.user.is_admin:
            trigger = EscrowTransaction.ReleaseTrigger.ADMIN
        else:
            trigger = EscrowTransaction.ReleaseTrigger.CLIENT

        try:
            escrow = EscrowService.release(uuid, request.user.user_id, trigger=trigger)
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)


class RefundEscrowView(APIView):
    """POST /api/escrow/<uuid>/refund - Return the funds to the client."""

    def post(self, request, uuid, *args, **kwargs):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            escrow = EscrowService.refund(
                uuid,
                request.user.user_id,
                serializer.validated_data["reason"],
                by_admin=request.user.is_admin,
            )
        except PaymentError as exc:
            return error_response(exc)
        return Response(EscrowSerializer(escrow).data)

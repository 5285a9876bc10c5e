import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.conf import payment_settings
from payments.exceptions import PaymentError
from payments.models import LedgerEntry
from payments.serializers import LedgerEntrySerializer, WalletSerializer
from payments.services import WalletService
from payments.views.base import ensure_self_or_admin, error_response

logger = logging.getLogger(__name__)


class WalletDetailView(APIView):
    """
    GET /api/wallets/<user_id>/ - Balance and points for a user.

    A user's own wallet is created on first access; admins get 404 for
    users who have no wallet yet.
    """

    def get(self, request, user_id, *args, **kwargs):
        try:
            ensure_self_or_admin(request, user_id)
            if str(request.user.user_id) == str(user_id):
                wallet = WalletService.get_or_create_wallet(user_id)
            else:
                wallet = WalletService.get_wallet(user_id)
        except PaymentError as exc:
            return error_response(exc)

        return Response(WalletSerializer(wallet).data, status=status.HTTP_200_OK)


class LedgerEntryListView(ListAPIView):
    """
    GET /api/wallets/<user_id>/ledger/ - Balance and points movements.

    Query params:
        - type: Filter by entry type (funding, withdrawal, escrow_hold, ...)
    """

    serializer_class = LedgerEntrySerializer

    def list(self, request, *args, **kwargs):
        try:
            ensure_self_or_admin(request, self.kwargs["user_id"])
        except PaymentError as exc:
            return error_response(exc)
        return super().list(request, *args, **kwargs)

    def get_queryset(self):
        queryset = LedgerEntry.objects.filter(wallet__user_id=self.kwargs["user_id"])
        entry_type = self.request.query_params.get("type")
        if entry_type:
            queryset = queryset.filter(entry_type=entry_type.lower())
        return queryset


class BankAccountsView(APIView):
    """GET /api/bank-accounts/ - Platform accounts users transfer funds to."""

    def get(self, request, *args, **kwargs):
        accounts = [
            account
            for account in payment_settings.PLATFORM_BANK_ACCOUNTS
            if account.get("account_number")
        ]
        return Response({"accounts": accounts}, status=status.HTTP_200_OK)

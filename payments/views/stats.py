from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.permissions import IsPlatformAdmin
from payments.serializers import PaymentStatsSerializer
from payments.services import PaymentStatsService


class PaymentStatsView(APIView):
    """
    GET /api/stats/ - Dashboard summary for admins.

    Request counts by status, pending requests by kind, and the number and
    NGN total of escrows still held.
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, *args, **kwargs):
        return Response(PaymentStatsSerializer(PaymentStatsService.summary()).data)

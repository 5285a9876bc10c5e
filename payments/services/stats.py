from django.db.models import Count, Q, Sum

from payments.models import EscrowTransaction, PaymentRequest
from payments.utils.money import ZERO


class PaymentStatsService:
    @staticmethod
    def summary() -> dict:
        """Counts and totals shown on the admin payments dashboard."""
        Status = PaymentRequest.Status
        requests = PaymentRequest.objects.aggregate(
            pending=Count("pk", filter=Q(status=Status.PENDING)),
            approved=Count("pk", filter=Q(status__in=[Status.APPROVED, Status.COMPLETED])),
            rejected=Count("pk", filter=Q(status=Status.REJECTED)),
        )
        pending_by_kind = dict.fromkeys(PaymentRequest.Kind.values, 0)
        pending_by_kind.update(
            PaymentRequest.objects.filter(status=Status.PENDING)
            .order_by()
            .values_list("kind")
            .annotate(total=Count("pk"))
        )
        held = EscrowTransaction.objects.filter(
            status=EscrowTransaction.Status.HELD
        ).aggregate(count=Count("pk"), amount_ngn=Sum("amount_ngn"))

        return {
            "requests": requests,
            "pending_by_kind": pending_by_kind,
            "escrow_held": {
                "count": held["count"],
                "amount_ngn": held["amount_ngn"] or ZERO,
            },
        }

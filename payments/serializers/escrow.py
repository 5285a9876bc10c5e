from rest_framework import serializers

from payments.models import EscrowTransaction


class EscrowSerializer(serializers.ModelSerializer):
    """Read-only serializer for escrow responses."""

    class Meta:
        model = EscrowTransaction
        fields = (
            "uuid",
            "job_id",
            "client_id",
            "apprentice_id",
            "amount_ngn",
            "status",
            "funding_source",
            "external_payment_reference",
            "auto_release_date",
            "delivered_at",
            "dispute_opened_at",
            "dispute_reason",
            "released_at",
            "released_by",
            "release_trigger",
            "platform_commission_ngn",
            "referral_commission_ngn",
            "payout_ngn",
            "refunded_at",
            "refunded_by",
            "refund_reason",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class FundEscrowSerializer(serializers.Serializer):
    """Validates escrow funding requests."""

    job_id = serializers.UUIDField()
    amount_ngn = serializers.DecimalField(max_digits=14, decimal_places=2)
    job_deadline = serializers.DateTimeField(required=False, allow_null=True)
    apprentice_id = serializers.UUIDField(required=False, allow_null=True)
    client_id = serializers.UUIDField(required=False)
    external_payment_reference = serializers.CharField(
        max_length=120, required=False, allow_blank=True, default=""
    )

    def validate_amount_ngn(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be positive.")
        return value


class AssignApprenticeSerializer(serializers.Serializer):
    apprentice_id = serializers.UUIDField()

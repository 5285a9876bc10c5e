import json

from rest_framework import serializers

from payments.models import (
    FundingRequest,
    PaymentRequest,
    SubscriptionPaymentRequest,
    WithdrawalRequest,
)
from payments.utils.bank import mask_account_number

BASE_FIELDS = (
    "uuid",
    "user_id",
    "kind",
    "status",
    "amount_ngn",
    "proof_of_payment_ref",
    "admin_reference",
    "admin_notes",
    "processed_at",
    "processed_by",
    "created_at",
    "updated_at",
)


class FundingRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = FundingRequest
        fields = BASE_FIELDS + (
            "bank_reference",
            "account_details",
            "fee_ngn",
            "credited_ngn",
            "credited_points",
        )
        read_only_fields = fields


class WithdrawalRequestSerializer(serializers.ModelSerializer):
    payout_details = serializers.SerializerMethodField()

    class Meta:
        model = WithdrawalRequest
        fields = BASE_FIELDS + (
            "points_requested",
            "fee_points",
            "total_deduction_points",
            "exchange_rate_version",
            "ngn_per_point",
            "payout_details",
        )
        read_only_fields = fields

    def get_payout_details(self, obj):
        details = dict(obj.payout_details or {})
        if details.get("account_number"):
            details["account_number"] = mask_account_number(details["account_number"])
        return details


class SubscriptionPaymentRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionPaymentRequest
        fields = BASE_FIELDS + ("plan_key", "payment_method", "payment_reference")
        read_only_fields = fields


KIND_SERIALIZERS = {
    PaymentRequest.Kind.FUNDING: FundingRequestSerializer,
    PaymentRequest.Kind.WITHDRAWAL: WithdrawalRequestSerializer,
    PaymentRequest.Kind.SUBSCRIPTION: SubscriptionPaymentRequestSerializer,
}


class PaymentRequestSerializer(serializers.ModelSerializer):
    """Renders any payment request with the fields of its kind."""

    class Meta:
        model = PaymentRequest
        fields = BASE_FIELDS
        read_only_fields = fields

    def to_representation(self, instance):
        serializer_class = KIND_SERIALIZERS[instance.kind]
        return serializer_class(instance.details, context=self.context).data


class CreateFundingRequestSerializer(serializers.Serializer):
    """Validates funding requests. Accepts JSON or multipart with a proof file."""

    amount_ngn = serializers.DecimalField(max_digits=14, decimal_places=2)
    bank_reference = serializers.CharField(
        max_length=120, required=False, allow_blank=True, default=""
    )
    account_details = serializers.JSONField(required=False, default=dict)
    proof_of_payment = serializers.FileField(required=False)
    proof_of_payment_ref = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default=""
    )

    def validate_amount_ngn(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be positive.")
        return value

    def validate_account_details(self, value):
        # Multipart bodies carry the object as a JSON string.
        if isinstance(value, str):
            try:
                value = json.loads(value) if value else {}
            except ValueError:
                raise serializers.ValidationError("Must be a JSON object.")
        if not isinstance(value, dict):
            raise serializers.ValidationError("Must be a JSON object.")
        return value


class CreateWithdrawalRequestSerializer(serializers.Serializer):
    points_requested = serializers.DecimalField(max_digits=14, decimal_places=2)
    bank_name = serializers.CharField(max_length=120)
    account_number = serializers.CharField(max_length=20)
    account_name = serializers.CharField(max_length=120)

    def validate_points_requested(self, value):
        if value <= 0:
            raise serializers.ValidationError("Points must be positive.")
        return value


class CreateSubscriptionRequestSerializer(serializers.Serializer):
    plan_key = serializers.CharField(max_length=32)
    amount_ngn = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_method = serializers.ChoiceField(
        choices=SubscriptionPaymentRequest.PaymentMethod.choices,
        default=SubscriptionPaymentRequest.PaymentMethod.MANUAL,
    )
    proof_of_payment = serializers.FileField(required=False)
    proof_of_payment_ref = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default=""
    )


class DecisionSerializer(serializers.Serializer):
    reference = serializers.CharField(
        max_length=120, required=False, allow_blank=True, default=""
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)


class BulkApproveSerializer(DecisionSerializer):
    ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=200
    )


class BulkRejectSerializer(ReasonSerializer):
    ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False, max_length=200
    )


class PaymentRequestFilterSerializer(serializers.Serializer):
    """Query parameters of the request list."""

    user_id = serializers.UUIDField(required=False)
    kind = serializers.ChoiceField(choices=PaymentRequest.Kind.choices, required=False)
    status = serializers.ChoiceField(
        choices=PaymentRequest.Status.choices, required=False
    )

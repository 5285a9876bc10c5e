from rest_framework import serializers

from payments.models import LedgerEntry, Wallet


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = (
            "uuid",
            "user_id",
            "balance_ngn",
            "available_points",
            "locked_points",
            "total_points",
            "total_deposited",
            "total_withdrawn",
            "total_earned",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class LedgerEntrySerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""

    class Meta:
        model = LedgerEntry
        fields = (
            "id",
            "entry_type",
            "amount_ngn",
            "points",
            "reference_type",
            "reference_id",
            "description",
            "created_at",
        )
        read_only_fields = fields

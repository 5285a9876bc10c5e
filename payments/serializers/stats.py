from rest_framework import serializers


class HeldEscrowStatsSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    amount_ngn = serializers.DecimalField(max_digits=14, decimal_places=2)


class PaymentStatsSerializer(serializers.Serializer):
    requests = serializers.DictField(child=serializers.IntegerField())
    pending_by_kind = serializers.DictField(child=serializers.IntegerField())
    escrow_held = HeldEscrowStatsSerializer()

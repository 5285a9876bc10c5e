from django.contrib import admin

from payments.models import (
    EscrowTransaction,
    FundingRequest,
    LedgerEntry,
    Referral,
    ReferralEarning,
    Subscription,
    SubscriptionPaymentRequest,
    Wallet,
    WithdrawalRequest,
)


class ReadOnlyAdminMixin:
    """
    Money only moves through the payment services, so these models are
    browsable in the admin but cannot be added, changed or deleted there.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "user_id",
        "balance_ngn",
        "available_points",
        "locked_points",
        "total_points",
        "updated_at",
    )
    search_fields = ("user_id", "uuid")


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "wallet",
        "entry_type",
        "amount_ngn",
        "points",
        "reference_type",
        "reference_id",
        "created_at",
    )
    list_filter = ("entry_type", "reference_type")
    search_fields = ("wallet__user_id", "reference_id")


class PaymentRequestAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "uuid",
        "user_id",
        "amount_ngn",
        "status",
        "processed_by",
        "processed_at",
        "created_at",
    )
    list_filter = ("status",)
    search_fields = ("uuid", "user_id", "admin_reference")


@admin.register(FundingRequest)
class FundingRequestAdmin(PaymentRequestAdmin):
    list_display = PaymentRequestAdmin.list_display + ("bank_reference", "fee_ngn")


@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(PaymentRequestAdmin):
    list_display = PaymentRequestAdmin.list_display + (
        "points_requested",
        "fee_points",
        "exchange_rate_version",
    )


@admin.register(SubscriptionPaymentRequest)
class SubscriptionPaymentRequestAdmin(PaymentRequestAdmin):
    list_display = PaymentRequestAdmin.list_display + ("plan_key", "payment_reference")
    search_fields = PaymentRequestAdmin.search_fields + ("payment_reference",)


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "uuid",
        "job_id",
        "client_id",
        "apprentice_id",
        "amount_ngn",
        "status",
        "auto_release_date",
        "dispute_opened_at",
    )
    list_filter = ("status", "funding_source", "release_trigger")
    search_fields = ("uuid", "job_id", "client_id", "apprentice_id")


@admin.register(ReferralEarning)
class ReferralEarningAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("referrer_id", "source_type", "source_id", "amount_ngn", "points")
    list_filter = ("source_type",)


@admin.register(Subscription)
class SubscriptionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("user_id", "plan_key", "status", "activated_at", "expires_at")
    list_filter = ("plan_key", "status")


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ("referrer_id", "referred_user_id", "created_at")
    search_fields = ("referrer_id", "referred_user_id")

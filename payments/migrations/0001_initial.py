import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Wallet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("user_id", models.UUIDField(unique=True)),
                ("balance_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("available_points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("locked_points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_deposited", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_withdrawn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_earned", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("balance_ngn__gte", 0)), name="wallet_balance_non_negative"),
                    models.CheckConstraint(condition=models.Q(("available_points__gte", 0)), name="wallet_available_points_non_negative"),
                    models.CheckConstraint(condition=models.Q(("locked_points__gte", 0)), name="wallet_locked_points_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("entry_type", models.CharField(choices=[("funding", "Wallet funding"), ("funding_fee", "Funding fee"), ("withdrawal_lock", "Withdrawal lock"), ("withdrawal_unlock", "Withdrawal unlock"), ("withdrawal", "Withdrawal"), ("withdrawal_fee", "Withdrawal fee"), ("subscription_payment", "Subscription payment"), ("escrow_hold", "Escrow hold"), ("escrow_release", "Escrow release"), ("escrow_refund", "Escrow refund"), ("platform_commission", "Platform commission"), ("referral_earning", "Referral earning")], max_length=24)),
                ("amount_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("reference_type", models.CharField(choices=[("payment_request", "Payment request"), ("escrow", "Escrow transaction"), ("referral", "Referral earning")], max_length=20)),
                ("reference_id", models.UUIDField()),
                ("description", models.CharField(blank=True, max_length=255)),
                ("wallet", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="ledger_entries", to="payments.wallet")),
            ],
            options={
                "verbose_name_plural": "ledger entries",
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["wallet", "entry_type"], name="idx_ledger_wallet_type"),
                    models.Index(fields=["reference_type", "reference_id"], name="idx_ledger_reference"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("user_id", models.UUIDField(db_index=True)),
                ("kind", models.CharField(choices=[("funding", "Wallet funding"), ("withdrawal", "Withdrawal"), ("subscription", "Subscription payment")], editable=False, max_length=12)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("completed", "Completed"), ("rejected", "Rejected")], default="pending", max_length=10)),
                ("amount_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("proof_of_payment_ref", models.CharField(blank=True, max_length=500)),
                ("admin_reference", models.CharField(blank=True, help_text="Bank or transaction reference supplied by the approving admin.", max_length=120)),
                ("admin_notes", models.TextField(blank=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("processed_by", models.UUIDField(blank=True, null=True)),
                ("idempotency_key", models.UUIDField(blank=True, editable=False, help_text="Client-generated UUID for idempotency.", null=True, unique=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["kind", "status"], name="idx_request_kind_status"),
                    models.Index(fields=["user_id", "status"], name="idx_request_user_status"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FundingRequest",
            fields=[
                ("paymentrequest_ptr", models.OneToOneField(auto_created=True, on_delete=django.db.models.deletion.CASCADE, parent_link=True, primary_key=True, serialize=False, to="payments.paymentrequest")),
                ("bank_reference", models.CharField(blank=True, max_length=120)),
                ("account_details", models.JSONField(blank=True, default=dict)),
                ("fee_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("credited_ngn", models.DecimalField(blank=True, decimal_places=2, default=None, max_digits=14, null=True)),
                ("credited_points", models.DecimalField(blank=True, decimal_places=2, default=None, max_digits=14, null=True)),
            ],
            bases=("payments.paymentrequest",),
        ),
        migrations.CreateModel(
            name="WithdrawalRequest",
            fields=[
                ("paymentrequest_ptr", models.OneToOneField(auto_created=True, on_delete=django.db.models.deletion.CASCADE, parent_link=True, primary_key=True, serialize=False, to="payments.paymentrequest")),
                ("points_requested", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("fee_points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_deduction_points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("exchange_rate_version", models.CharField(max_length=32)),
                ("ngn_per_point", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("payout_details", models.JSONField(default=dict)),
            ],
            bases=("payments.paymentrequest",),
        ),
        migrations.CreateModel(
            name="SubscriptionPaymentRequest",
            fields=[
                ("paymentrequest_ptr", models.OneToOneField(auto_created=True, on_delete=django.db.models.deletion.CASCADE, parent_link=True, primary_key=True, serialize=False, to="payments.paymentrequest")),
                ("plan_key", models.CharField(max_length=32)),
                ("payment_method", models.CharField(choices=[("manual", "Manual"), ("bank_transfer", "Bank transfer"), ("card", "Card")], default="manual", max_length=16)),
                ("payment_reference", models.CharField(max_length=64, unique=True)),
            ],
            bases=("payments.paymentrequest",),
        ),
        migrations.CreateModel(
            name="EscrowTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("job_id", models.UUIDField(db_index=True)),
                ("client_id", models.UUIDField(db_index=True)),
                ("apprentice_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("amount_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("status", models.CharField(choices=[("held", "Held"), ("released", "Released"), ("refunded", "Refunded")], default="held", max_length=10)),
                ("funding_source", models.CharField(choices=[("wallet", "Wallet balance"), ("external", "External payment")], default="wallet", max_length=10)),
                ("external_payment_reference", models.CharField(blank=True, max_length=120)),
                ("auto_release_date", models.DateTimeField()),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("dispute_opened_at", models.DateTimeField(blank=True, null=True)),
                ("dispute_reason", models.TextField(blank=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("released_by", models.UUIDField(blank=True, null=True)),
                ("release_trigger", models.CharField(blank=True, choices=[("client", "Client approval"), ("admin", "Admin decision"), ("auto", "Automatic release")], max_length=10)),
                ("platform_commission_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("referral_commission_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("payout_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_by", models.UUIDField(blank=True, null=True)),
                ("refund_reason", models.TextField(blank=True)),
                ("idempotency_key", models.UUIDField(blank=True, editable=False, null=True, unique=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "indexes": [
                    models.Index(fields=["status", "auto_release_date"], name="idx_escrow_status_release"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status", "held")), fields=("job_id",), name="unique_held_escrow_per_job"),
                    models.CheckConstraint(condition=models.Q(("amount_ngn__gt", 0)), name="escrow_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Referral",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("referrer_id", models.UUIDField(db_index=True)),
                ("referred_user_id", models.UUIDField(unique=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("referrer_id", models.F("referred_user_id")), _negated=True), name="referral_not_self"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReferralEarning",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("uuid", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False, unique=True)),
                ("referrer_id", models.UUIDField(db_index=True)),
                ("referred_user_id", models.UUIDField()),
                ("source_type", models.CharField(choices=[("subscription", "Subscription payment"), ("escrow", "Escrow release")], max_length=12)),
                ("source_id", models.UUIDField()),
                ("amount_ngn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("points", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("exchange_rate_version", models.CharField(max_length=32)),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
                "constraints": [
                    models.UniqueConstraint(fields=("source_type", "source_id"), name="unique_referral_source"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user_id", models.UUIDField(unique=True)),
                ("plan_key", models.CharField(max_length=32)),
                ("status", models.CharField(choices=[("active", "Active"), ("expired", "Expired")], default="active", max_length=10)),
                ("activated_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField()),
                ("last_payment_request", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="payments.subscriptionpaymentrequest")),
            ],
            options={
                "ordering": ["-created_at"],
                "abstract": False,
            },
        ),
    ]

from django.conf import settings

DEFAULTS = {
    "MIN_FUNDING_NGN": "1000",
    "FUNDING_FEE_RATE": "0",
    "FUNDING_CREDIT_MODE": "balance",
    "FUNDING_PROOF_REQUIRED": True,
    "MIN_WITHDRAWAL_POINTS": "20",
    "WITHDRAWAL_WINDOW_DAYS": list(range(25, 32)),
    "WITHDRAWAL_FEE_RATES": {"apprentice": "0.10", "member": "0"},
    "POINTS_EXCHANGE_RATE": {"version": "v1", "ngn_per_point": "150"},
    "PLATFORM_COMMISSION_RATE": "0.10",
    "REFERRAL_ESCROW_RATE": "0.05",
    "REFERRAL_SUBSCRIPTION_RATE": "0.10",
    "ESCROW_GRACE_PERIOD_DAYS": 7,
    "SUBSCRIPTION_PLANS": {},
    "PLATFORM_BANK_ACCOUNTS": [],
    "PROOF_MAX_UPLOAD_BYTES": 5 * 1024 * 1024,
    "NOTIFICATION_WEBHOOK_URL": "",
    "NOTIFICATION_TIMEOUT": 10,
    "IDENTITY_GATEWAY_SECRET": "",
}


class PaymentSettings:
    """
    Reads payment settings from Django settings on every access.

    Values are not cached so ``override_settings`` applies immediately.
    """

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Unknown payment setting: {name}")
        return getattr(settings, name, DEFAULTS[name])


payment_settings = PaymentSettings()

from django.utils import timezone

from payments.conf import payment_settings


def is_withdrawal_window_open(today=None) -> bool:
    """Withdrawals are accepted only on the configured days of the month."""
    open_days = payment_settings.WITHDRAWAL_WINDOW_DAYS
    if not open_days:
        return True
    today = today or timezone.localdate()
    return today.day in open_days


def describe_withdrawal_window() -> str:
    open_days = payment_settings.WITHDRAWAL_WINDOW_DAYS
    if not open_days:
        return "every day"
    days = sorted(open_days)
    if days == list(range(days[0], days[-1] + 1)):
        return f"days {days[0]}-{days[-1]} of each month"
    return "days " + ", ".join(str(day) for day in days) + " of each month"

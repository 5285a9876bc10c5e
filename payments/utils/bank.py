import re

from payments.exceptions import ValidationError

PAYOUT_FIELDS = ("bank_name", "account_number", "account_name")
ACCOUNT_NUMBER_RE = re.compile(r"^\d{10,}$")


def validate_payout_details(details) -> dict:
    """
    Check bank payout details and return a cleaned copy.

    Raises:
        ValidationError: If a field is missing or the account number is not
            at least ten digits.
    """
    if not isinstance(details, dict):
        raise ValidationError("Bank details are required.", field="payout_details")

    cleaned = {}
    for field in PAYOUT_FIELDS:
        value = str(details.get(field) or "").strip()
        if not value:
            raise ValidationError(f"Missing {field}.", field=field)
        cleaned[field] = value

    if not ACCOUNT_NUMBER_RE.match(cleaned["account_number"]):
        raise ValidationError(
            "Account number must be at least 10 digits and contain only digits.",
            field="account_number",
        )
    return cleaned


def mask_account_number(account_number) -> str:
    account_number = str(account_number or "")
    if len(account_number) <= 4:
        return account_number
    return "*" * (len(account_number) - 4) + account_number[-4:]

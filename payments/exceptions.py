class PaymentError(Exception):
    """
    Base class for errors raised by the payment and escrow services.

    Every subclass carries a stable ``code`` and the HTTP ``status_code``
    the API layer responds with. No state is changed when one is raised.
    """

    code = "payment_error"
    status_code = 400

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def as_dict(self):
        data = {"error": self.message, "code": self.code}
        if self.field:
            data["field"] = self.field
        return data


class ValidationError(PaymentError):
    code = "validation_error"


class IdempotencyConflict(ValidationError):
    """An idempotency key was reused with different parameters."""

    code = "idempotency_conflict"
    status_code = 409


class InsufficientBalance(PaymentError):
    code = "insufficient_balance"


class WithdrawalWindowClosedError(PaymentError):
    code = "withdrawal_window_closed"


class Forbidden(PaymentError):
    code = "forbidden"
    status_code = 403


class NotFound(PaymentError):
    code = "not_found"
    status_code = 404


class AlreadyProcessed(PaymentError):
    code = "already_processed"
    status_code = 409


class AlreadyFinalized(PaymentError):
    code = "already_finalized"
    status_code = 409


class DependencyFailure(PaymentError):
    code = "dependency_failure"
    status_code = 503

# app/errors.py


class PayoutError(Exception):
    """Base class for settlement engine errors."""


class InvalidCycleError(PayoutError, ValueError):
    """Settlement cycle key is not of the form YYYY-MM-Cn."""


class InvalidStatusError(PayoutError, ValueError):
    """Unknown payout status string."""


class PayoutNotFoundError(PayoutError):
    """No aggregate record exists for the (merchant, cycle) pair."""

    def __init__(self, merchant_key: str, cycle: str):
        self.merchant_key = merchant_key
        self.cycle = cycle
        super().__init__(f"No payout record for merchant={merchant_key} cycle={cycle}")


class PayoutTransitionError(PayoutError):
    """Requested status change is not allowed (e.g. Paid -> Pending)."""

"""Error taxonomy for the amortization engine."""


class AmortizationError(Exception):
    """Base exception for all amortization errors."""

    field = None


class InvalidInputError(AmortizationError):
    """Raised when a loan term is malformed or out of domain."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class DegenerateTermsError(AmortizationError):
    """Raised when valid-looking terms would divide by zero in the annuity formula."""


class ConfigurationError(AmortizationError):
    """Raised when configuration is invalid."""

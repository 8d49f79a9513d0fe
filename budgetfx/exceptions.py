"""Engine-level exceptions."""


class BudgetFxError(Exception):
    """Base exception for engine errors."""

    def __init__(self, message: str, code: str = "BUDGETFX_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ConversionFailure(BudgetFxError):
    """Raised when the conversion service cannot convert a single or batched request."""

    def __init__(self, message: str):
        super().__init__(message, code="CONVERSION_FAILURE")

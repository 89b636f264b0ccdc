"""Exception hierarchy for the loan calculation engine."""


class LoanEngineError(Exception):
    """Base exception for all engine errors."""


class InvalidLoanError(LoanEngineError, ValueError):
    """Raised when a loan or plan has a shape no schedule can be built from."""


class PlanFrozenError(LoanEngineError):
    """Raised when plan terms are changed after the loan was processed."""


class LoanNotFoundError(LoanEngineError, LookupError):
    """Raised when a referenced loan does not exist in storage."""


class StaleWriteError(LoanEngineError):
    """Raised when a versioned update finds the record changed underneath it."""


class ExtensionNotAllowedError(LoanEngineError):
    """Raised when a tenor extension is requested for an ineligible loan."""

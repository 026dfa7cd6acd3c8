class NotFoundError(ValueError):
    """A review, category, user or month code could not be resolved."""


class ConflictError(ValueError):
    """Insert collided with an existing (user, month_code) review."""


class ValidationError(ValueError):
    """Rejected input: disallowed fields or malformed ledger values."""


class ComputationError(ArithmeticError):
    pass

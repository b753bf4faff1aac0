class StockError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StockError):
    """Malformed or missing input that rejects the whole call."""


class RowError(StockError):
    """A single import row failed; recorded in the report, never raised past the importer."""


class UnresolvedIdentity(RowError):
    pass


class NotFoundOrForbidden(StockError):
    """Target is missing or outside the caller's scope. Both causes share one message."""


class InvariantViolation(StockError):
    pass

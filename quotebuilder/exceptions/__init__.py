"""Custom exceptions for the quote builder."""


class QuoteBuilderError(Exception):
    """Base exception for all application errors."""
    retryable = False

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['retryable'] = self.retryable
        return rv


class ValidationError(QuoteBuilderError):
    """Missing or malformed required input."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class StateError(QuoteBuilderError):
    """Operation not valid from the current quote or wizard state."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class NotFoundError(QuoteBuilderError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class TransientStorageError(QuoteBuilderError):
    """Storage call failed for infrastructure reasons; safe to retry."""
    retryable = True

    def __init__(self, message="Storage temporarily unavailable, please retry", payload=None):
        super().__init__(message, 503, payload)


class UnauthorizedError(QuoteBuilderError):
    """Raised when no organization is available for the current caller."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class DuplicateQuoteError(StateError):
    """The wizard draft behind this save was already committed as a quote."""
    def __init__(self, quote_number, quote_id=None):
        super().__init__(
            f'This draft was already saved as quote {quote_number}.',
            {'quote_id': quote_id, 'quote_number': quote_number}
        )
        self.quote_number = quote_number
        self.quote_id = quote_id


class DeliveryError(QuoteBuilderError):
    """Email delivery of a quote failed; nothing was changed."""
    retryable = True

    def __init__(self, message="Quote could not be delivered, please retry", payload=None):
        super().__init__(message, 502, payload)

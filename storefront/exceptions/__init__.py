"""Custom exceptions for the storefront application.

Each exception carries an `error` label and an HTTP status so callers
classify failures by type instead of matching message text.
"""


class StorefrontError(Exception):
    """Base exception for all application errors."""
    error_label = 'Internal Server Error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.error_label
        rv['message'] = self.message
        return rv


class ValidationError(StorefrontError):
    """Malformed request shape. Raised before any transaction starts."""
    error_label = 'Validation error'

    def __init__(self, message="Validation error", details=None):
        super().__init__(message, 400, {'details': details} if details is not None else None)
        self.details = details


class BusinessLogicError(StorefrontError):
    """Exception raised for business logic violations (preconditions, illegal transitions)."""

    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

    def to_dict(self):
        # Preconditions surface their message as the error itself
        rv = dict(self.payload or ())
        rv['error'] = self.message
        return rv


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        return rv


class CouponError(StorefrontError):
    """A coupon rule rejected the code. Aborts the order transaction."""
    error_label = 'Coupon validation failed'

    INVALID = 'INVALID'
    NOT_STARTED = 'NOT_STARTED'
    EXPIRED = 'EXPIRED'
    EXHAUSTED = 'EXHAUSTED'
    USER_LIMIT = 'USER_LIMIT'
    MIN_AMOUNT = 'MIN_AMOUNT'

    def __init__(self, message, reason=INVALID, details=None):
        payload = {'reason': reason}
        if details:
            payload['details'] = details
        super().__init__(message, 400, payload)
        self.reason = reason
        self.details = details or {}


class OrderCreationError(StorefrontError):
    """Generic order failure surfaced as 500 with a descriptive message."""
    error_label = 'Failed to create order'

    def __init__(self, message, payload=None):
        super().__init__(message, 500, payload)


class InsufficientStockError(OrderCreationError):
    """Raised when a conditional stock decrement affects no rows."""

    def __init__(self, product_name, requested, variant_id=None):
        message = f"Insufficient stock for {product_name}"
        if variant_id is not None:
            message += " (variant)"
        super().__init__(message)
        self.product_name = product_name
        self.requested = requested
        self.variant_id = variant_id


class CalculationError(OrderCreationError):
    """A pricing field came out as NaN (malformed configuration data)."""

    def __init__(self, message="Invalid calculation results"):
        super().__init__(message)


class UnauthorizedError(StorefrontError):
    """Raised when no authenticated user is present."""

    def __init__(self, message="Unauthorized"):
        super().__init__(message, 401)

    def to_dict(self):
        return {'error': self.message}


class ForbiddenError(StorefrontError):
    """Raised when a user lacks permission for an action."""

    def __init__(self, message="Forbidden"):
        super().__init__(message, 403)

    def to_dict(self):
        return {'error': self.message}

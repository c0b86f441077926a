"""
Service-layer error taxonomy.

Every failure raised by the inventory and order services is a ServiceError
subclass carrying a stable machine-readable code and a human-readable
message. Views translate them into JSON responses with error_response().
"""
import enum
import logging

from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    NOT_FOUND = 'NOT_FOUND'
    INSUFFICIENT_STOCK = 'INSUFFICIENT_STOCK'
    INVALID_QUANTITY = 'INVALID_QUANTITY'
    EMPTY_ORDER = 'EMPTY_ORDER'
    ALREADY_FINALIZED = 'ALREADY_FINALIZED'
    INVALID_STATUS_TRANSITION = 'INVALID_STATUS_TRANSITION'
    PAYMENT_VERIFICATION_FAILED = 'PAYMENT_VERIFICATION_FAILED'
    ALREADY_PAID = 'ALREADY_PAID'
    UNAUTHORIZED = 'UNAUTHORIZED'
    ALREADY_REVIEWED = 'ALREADY_REVIEWED'


class ServiceError(Exception):
    """Base class for errors raised by service functions."""
    kind = None
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.kind.value


class NotFound(ServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found with id of {identifier}")


class InsufficientStock(ServiceError):
    """Raised when a line item asks for more units than are in stock."""
    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, product_name: str, requested: int, available: int):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for product {product_name}: "
            f"requested {requested}, available {available}"
        )


class InvalidQuantity(ServiceError):
    kind = ErrorKind.INVALID_QUANTITY

    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity cannot be negative (got {quantity})")


class EmptyOrder(ServiceError):
    kind = ErrorKind.EMPTY_ORDER

    def __init__(self):
        super().__init__("Order must contain at least one item")


class AlreadyFinalized(ServiceError):
    kind = ErrorKind.ALREADY_FINALIZED

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been delivered")


class InvalidStatusTransition(ServiceError):
    kind = ErrorKind.INVALID_STATUS_TRANSITION

    def __init__(self, current: str, requested: str, message: str = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot move order from {current} back to {requested}")


class PaymentVerificationFailed(ServiceError):
    kind = ErrorKind.PAYMENT_VERIFICATION_FAILED

    def __init__(self):
        super().__init__("Payment verification failed")


class AlreadyPaid(ServiceError):
    kind = ErrorKind.ALREADY_PAID

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been paid")


class AlreadyReviewed(ServiceError):
    kind = ErrorKind.ALREADY_REVIEWED

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__("Product already reviewed by this user")


class Unauthorized(ServiceError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(message)


def error_response(exc: ServiceError) -> Response:
    """Build the JSON response for a service error."""
    return Response(
        {'error': exc.code, 'detail': exc.message},
        status=exc.status_code
    )


def server_error_response(exc: Exception) -> Response:
    logger.exception(f"Unexpected error: {exc}")
    return Response(
        {'error': 'SERVER_ERROR', 'detail': 'An unexpected error occurred'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )

"""
Payment confirmation for orders paid through the external gateway.

The gateway signs each successful payment with
HMAC-SHA256(secret, "<gateway_order_id>|<gateway_payment_id>") in hex.
"""
import hashlib
import hmac
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import AlreadyPaid, NotFound, PaymentVerificationFailed, Unauthorized
from .models import Order

logger = logging.getLogger(__name__)


def compute_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_signature(gateway_order_id: str, gateway_payment_id: str,
                     provided_signature: str, secret: str) -> None:
    """
    Raises:
        PaymentVerificationFailed: If the signature does not match
    """
    expected = compute_signature(gateway_order_id, gateway_payment_id, secret)
    if not hmac.compare_digest(expected.encode('utf-8'), (provided_signature or '').encode('utf-8')):
        raise PaymentVerificationFailed()


def confirm_payment(order_id: int, user, gateway_order_id: str, gateway_payment_id: str,
                    signature: str, secret: str = None, now=None) -> Order:
    """
    Mark an order paid once the gateway signature checks out.

    Raises:
        NotFound: If the order does not exist
        Unauthorized: If the user does not own the order
        AlreadyPaid: If the order has already been paid
        PaymentVerificationFailed: If the signature does not match
    """
    secret = secret or settings.PAYMENT_GATEWAY_SECRET

    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFound('Order', order_id)

        if order.user_id != user.pk:
            raise Unauthorized(f"User {user.pk} is not authorized to pay for this order")

        if order.is_paid:
            raise AlreadyPaid(order.id)

        try:
            verify_signature(gateway_order_id, gateway_payment_id, signature, secret)
        except PaymentVerificationFailed:
            logger.warning(f"Payment signature mismatch for order #{order.id}")
            raise

        order.payment_gateway_order_id = gateway_order_id
        order.payment_id = gateway_payment_id
        order.payment_status = Order.PaymentStatus.PAID
        order.paid_at = now or timezone.now()
        order.save(update_fields=[
            'payment_gateway_order_id', 'payment_id', 'payment_status',
            'paid_at', 'updated_at'
        ])

    logger.info(f"Order #{order.id} paid (gateway payment {gateway_payment_id})")
    return order

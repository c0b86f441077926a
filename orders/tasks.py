"""
Celery tasks for order notifications.

Tasks:
    - send_order_confirmation: Email the customer after checkout
    - send_order_status_update: Email the customer when the status changes

Delivery is best-effort: failures are logged, not retried.
"""
import logging

from celery import shared_task

from .notifications import send_notification

logger = logging.getLogger(__name__)


def _load_order(order_id: int):
    from orders.models import Order

    try:
        return Order.objects.select_related('user').prefetch_related('items').get(id=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order #{order_id} not found for notification")
        return None


@shared_task(ignore_result=True)
def send_order_confirmation(order_id: int):
    """
    Email the order summary to the customer.

    Returns:
        Dict with delivery status
    """
    order = _load_order(order_id)
    if order is None:
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    items_summary = [
        f"  - {item.quantity}x {item.name} @ ${item.unit_price}"
        for item in order.items.all()
    ]

    body = "\n".join([
        f"Your order has been placed successfully. Order ID: {order.id}",
        "",
        "Items:",
        *items_summary,
        "",
        f"Items: ${order.items_price}",
        f"Tax: ${order.tax_price}",
        f"Shipping: ${order.shipping_price}",
        f"Discount: -${order.discount_amount}",
        f"Total: ${order.total_price}",
    ])

    sent = send_notification(order.user.email, 'Order Confirmation', body)
    logger.info(f"[CELERY] Confirmation for order #{order.id}: {'sent' if sent else 'not sent'}")

    return {
        'status': 'success' if sent else 'failed',
        'order_id': order.id,
    }


@shared_task(ignore_result=True)
def send_order_status_update(order_id: int):
    order = _load_order(order_id)
    if order is None:
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    body = f"Your order status has been updated to {order.status}"
    sent = send_notification(order.user.email, 'Order Status Update', body)
    logger.info(
        f"[CELERY] Status update ({order.status}) for order #{order.id}: "
        f"{'sent' if sent else 'not sent'}"
    )

    return {
        'status': 'success' if sent else 'failed',
        'order_id': order.id,
    }

"""
Customer notifications for orders.

send_notification() is the only place that talks to the mail backend;
dispatch_* helpers queue the Celery tasks once the surrounding transaction
commits. Failures at either step are logged and never raised to the caller.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction

logger = logging.getLogger(__name__)


def send_notification(recipient: str, subject: str, body: str) -> bool:
    """
    Send a single plain-text email.

    Returns True if the backend accepted the message, False otherwise.
    """
    if not recipient:
        logger.warning(f"Skipping notification '{subject}': no recipient address")
        return False

    try:
        sent = send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            fail_silently=False,
        )
    except Exception as e:
        logger.error(f"Failed to send '{subject}' to {recipient}: {e}")
        return False

    return bool(sent)


def _queue(task, order_id: int) -> None:
    try:
        task.apply_async(args=[order_id], retry=False)
        logger.info(f"Queued {task.name} for order #{order_id}")
    except Exception as e:
        # Don't fail the order if task queuing fails
        logger.error(f"Failed to queue {task.name} for order #{order_id}: {e}")


def dispatch_order_confirmation(order_id: int) -> None:
    from .tasks import send_order_confirmation
    transaction.on_commit(lambda: _queue(send_order_confirmation, order_id))


def dispatch_status_update(order_id: int) -> None:
    from .tasks import send_order_status_update
    transaction.on_commit(lambda: _queue(send_order_status_update, order_id))

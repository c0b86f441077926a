"""
Celery tasks for inventory maintenance.

Tasks:
    - reconcile_inventory: Periodic check that stock matches the ledger
"""
import logging

from celery import shared_task

from . import services

logger = logging.getLogger(__name__)


@shared_task
def reconcile_inventory():
    """
    Re-derive every product's stock from its history and repair drift.

    Scheduled nightly via Celery Beat (see CELERY_BEAT_SCHEDULE).
    """
    corrected = services.reconcile_all()
    if corrected:
        logger.warning(
            f"[CELERY] Reconciliation corrected {len(corrected)} record(s): "
            f"{[result.product_id for result in corrected]}"
        )
    return {'corrected': [result.product_id for result in corrected]}

"""
Inventory Ledger - the single write path for stock quantities.

Every stock change goes through adjust() (decrement() is a conditional
wrapper around it). Each change, in one transaction:
1. Locks the inventory row with select_for_update()
2. Sets the new quantity on the record
3. Appends an immutable history entry with the signed delta
4. Mirrors the quantity onto Product.stock

reconcile() re-derives the quantity from history and repairs drift.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import InsufficientStock, InvalidQuantity, NotFound
from .models import Inventory, InventoryHistoryEntry, Product

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 10
DEFAULT_ADJUSTMENT_REASON = 'Inventory adjustment'
OPENING_STOCK_REASON = 'Opening stock'


@dataclass(frozen=True)
class InventorySnapshot:
    """Current quantity plus the full history, oldest first."""
    product_id: int
    quantity: int
    low_stock_threshold: int
    history: Tuple[InventoryHistoryEntry, ...]


@dataclass(frozen=True)
class ReconciliationResult:
    product_id: int
    recorded_quantity: int
    product_stock: int
    derived_quantity: int
    corrected: bool


def open_record(product: Product, user=None) -> Inventory:
    """
    Create the inventory record for a product, seeded from product.stock.

    The opening history entry carries the whole opening stock as its change,
    so the sum of changes matches the quantity from the first entry on.
    Returns the existing record if there already is one.
    """
    with transaction.atomic():
        inventory, created = Inventory.objects.get_or_create(
            product=product,
            defaults={'quantity': product.stock}
        )
        if created:
            InventoryHistoryEntry.objects.create(
                inventory=inventory,
                quantity=product.stock,
                change=product.stock,
                reason=OPENING_STOCK_REASON,
                user=user
            )
            logger.info(f"Opened inventory for product #{product.id} with {product.stock} units")
    return inventory


def _lock_record(product_id: int, create_missing: bool = False) -> Inventory:
    """
    Row-lock the product, then its inventory record. Must run inside a transaction.

    Every writer locks Product before Inventory, the same order order
    creation uses, so concurrent writers queue instead of deadlocking.
    """
    product = Product.objects.select_for_update().filter(pk=product_id).first()

    queryset = Inventory.objects.select_for_update().select_related('product')
    try:
        return queryset.get(product_id=product_id)
    except Inventory.DoesNotExist:
        if not create_missing:
            raise NotFound('Inventory', product_id)

    if product is None:
        raise NotFound('Product', product_id)
    open_record(product)
    return queryset.get(product_id=product_id)


def _apply(inventory: Inventory, new_quantity: int, reason: str, user) -> Inventory:
    change = new_quantity - inventory.quantity

    inventory.quantity = new_quantity
    inventory.save(update_fields=['quantity', 'last_updated'])

    InventoryHistoryEntry.objects.create(
        inventory=inventory,
        quantity=new_quantity,
        change=change,
        reason=reason or DEFAULT_ADJUSTMENT_REASON,
        user=user
    )

    Product.objects.filter(pk=inventory.product_id).update(
        stock=new_quantity,
        updated_at=timezone.now()
    )
    inventory.product.stock = new_quantity

    logger.info(
        f"Inventory for product #{inventory.product_id}: {change:+d} -> {new_quantity} "
        f"({reason or DEFAULT_ADJUSTMENT_REASON})"
    )
    return inventory


def adjust(product_id: int, new_quantity: int, reason: Optional[str] = None,
           user=None) -> Inventory:
    """
    Set a product's stock to new_quantity and record the change.

    Raises:
        NotFound: If the product has no inventory record
        InvalidQuantity: If new_quantity is negative
    """
    with transaction.atomic():
        inventory = _lock_record(product_id)
        if new_quantity < 0:
            raise InvalidQuantity(new_quantity)
        return _apply(inventory, new_quantity, reason, user)


def decrement(product_id: int, amount: int, reason: Optional[str] = None,
              user=None) -> Inventory:
    """
    Take `amount` units out of stock, only if that many are available.

    Availability is checked against the locked row, not a value the caller
    read earlier. Creates the inventory record on first use.

    Raises:
        NotFound: If the product does not exist
        InvalidQuantity: If amount is negative
        InsufficientStock: If fewer than `amount` units are in stock
    """
    if amount < 0:
        raise InvalidQuantity(amount)

    with transaction.atomic():
        inventory = _lock_record(product_id, create_missing=True)
        if amount > inventory.quantity:
            raise InsufficientStock(inventory.product.name, amount, inventory.quantity)
        return adjust(product_id, inventory.quantity - amount, reason=reason, user=user)


def get_record(product_id: int) -> Inventory:
    try:
        return Inventory.objects.select_related('product').get(product_id=product_id)
    except Inventory.DoesNotExist:
        raise NotFound('Inventory', product_id)


def query(product_id: int) -> InventorySnapshot:
    inventory = get_record(product_id)

    history = tuple(
        inventory.history.select_related('user').order_by('created_at', 'id')
    )
    return InventorySnapshot(
        product_id=product_id,
        quantity=inventory.quantity,
        low_stock_threshold=inventory.low_stock_threshold,
        history=history
    )


def list_inventory():
    """All inventory records, lowest quantity first."""
    return Inventory.objects.select_related('product').order_by('quantity', 'product_id')


def list_low_stock(threshold: Optional[int] = None):
    """Records with quantity <= threshold (default 10), lowest quantity first."""
    if threshold is None:
        threshold = DEFAULT_LOW_STOCK_THRESHOLD
    return list_inventory().filter(quantity__lte=threshold)


def reconcile(product_id: int) -> ReconciliationResult:
    """
    Re-derive the quantity from history and repair the record and
    Product.stock if either has drifted. History is never rewritten.
    """
    with transaction.atomic():
        inventory = _lock_record(product_id)
        derived = inventory.history.aggregate(total=Sum('change'))['total'] or 0
        recorded = inventory.quantity
        product_stock = inventory.product.stock

        corrected = not (derived == recorded == product_stock)
        if corrected:
            logger.warning(
                f"Inventory drift for product #{product_id}: record={recorded}, "
                f"product.stock={product_stock}, history={derived}; correcting"
            )
            Inventory.objects.filter(pk=inventory.pk).update(
                quantity=derived,
                last_updated=timezone.now()
            )
            Product.objects.filter(pk=product_id).update(
                stock=derived,
                updated_at=timezone.now()
            )

    return ReconciliationResult(
        product_id=product_id,
        recorded_quantity=recorded,
        product_stock=product_stock,
        derived_quantity=derived,
        corrected=corrected
    )


def reconcile_all() -> List[ReconciliationResult]:
    """Reconcile every inventory record; returns only the corrected ones."""
    results = []
    for product_id in Inventory.objects.values_list('product_id', flat=True).order_by('product_id'):
        result = reconcile(product_id)
        if result.corrected:
            results.append(result)
    logger.info(f"Reconciliation finished: {len(results)} record(s) corrected")
    return results

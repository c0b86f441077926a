"""
Order Service Layer - order creation and lifecycle.

Order creation runs in one transaction:
1. Lock the requested product rows with select_for_update()
2. Validate ALL items have sufficient stock (fail fast, nothing mutated)
3. Price the order from catalog prices, applying a valid coupon
4. Persist the order with item snapshots
5. Decrement stock per line through the inventory ledger
6. Queue the confirmation email for after commit
"""
import logging
from typing import Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from core.exceptions import (
    AlreadyFinalized,
    EmptyOrder,
    InsufficientStock,
    InvalidStatusTransition,
    NotFound,
    Unauthorized,
)
from inventory import services as ledger
from inventory.models import Product
from .models import Coupon, Order, OrderItem
from .notifications import dispatch_order_confirmation, dispatch_status_update
from .pricing import calculate_prices

logger = logging.getLogger(__name__)


def validate_stock(items: List[Dict]) -> Dict[int, Product]:
    """
    Check every requested line against current product stock.

    Product rows are locked in primary-key order; call inside a transaction.
    Quantities for a product listed more than once are added up.

    Args:
        items: List of dicts with 'product_id' and 'quantity'

    Returns:
        Mapping of product id to locked Product

    Raises:
        NotFound: If any product id does not resolve
        InsufficientStock: If any product has fewer units than requested
    """
    requested = {}
    for item in items:
        product_id = item['product_id']
        requested[product_id] = requested.get(product_id, 0) + item['quantity']

    products = Product.objects.select_for_update().order_by('pk').in_bulk(sorted(requested))

    for product_id in requested:
        if product_id not in products:
            raise NotFound('Product', product_id)

    for product_id, quantity in requested.items():
        product = products[product_id]
        if quantity > product.stock:
            raise InsufficientStock(product.name, quantity, product.stock)

    return products


def create_order(user, items: List[Dict], shipping_info: Dict, payment_method: str,
                 coupon_code: Optional[str] = None, now=None) -> Order:
    """
    Create an order, decrement stock and queue the confirmation email.

    An unknown, inactive or expired coupon code is ignored (no discount).

    Args:
        user: Customer placing the order
        items: List of dicts with 'product_id' and 'quantity'
        shipping_info: Dict with address, city, state, country, pin_code, phone_no
        payment_method: Payment method label
        coupon_code: Optional coupon code
        now: Time used for coupon validity (defaults to now)

    Raises:
        EmptyOrder: If items is empty
        NotFound: If a product does not exist
        InsufficientStock: If any line exceeds available stock
    """
    if not items:
        raise EmptyOrder()

    now = now or timezone.now()

    with transaction.atomic():
        products = validate_stock(items)

        coupon = None
        if coupon_code:
            coupon = Coupon.objects.find_valid_by_code(coupon_code, now)
            if coupon is None:
                logger.info(f"Ignoring invalid coupon code '{coupon_code}'")

        prices = calculate_prices(
            [(products[item['product_id']].price, item['quantity']) for item in items],
            coupon=coupon,
            now=now
        )

        order = Order.objects.create(
            user=user,
            shipping_address=shipping_info['address'],
            shipping_city=shipping_info['city'],
            shipping_state=shipping_info['state'],
            shipping_country=shipping_info['country'],
            shipping_pin_code=str(shipping_info['pin_code']),
            shipping_phone_no=shipping_info['phone_no'],
            payment_method=payment_method,
            coupon=coupon if prices.discount_amount else None,
            **prices.as_dict()
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=products[item['product_id']],
                name=products[item['product_id']].name,
                unit_price=products[item['product_id']].price,
                quantity=item['quantity'],
                image=products[item['product_id']].primary_image_url,
            )
            for item in items
        ])

        # One line at a time keeps per-product history ordering deterministic
        for item in items:
            ledger.decrement(
                item['product_id'],
                item['quantity'],
                reason=f"Order #{order.id}",
                user=user
            )

        dispatch_order_confirmation(order.id)

    logger.info(
        f"Order #{order.id} created for user #{user.pk}: {len(items)} items, "
        f"total ${order.total_price}"
    )
    return order


def get_order(order_id: int) -> Order:
    try:
        return Order.objects.select_related('user', 'coupon').prefetch_related('items').get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFound('Order', order_id)


def get_order_for_user(order_id: int, user) -> Order:
    """Fetch an order the user owns, or any order for staff users."""
    order = get_order(order_id)
    if order.user_id != user.pk and not user.is_staff:
        raise Unauthorized(f"User {user.pk} is not authorized to access this order")
    return order


def update_status(order_id: int, new_status: str, user=None, now=None) -> Order:
    """
    Move an order forward in its lifecycle.

    Raises:
        NotFound: If the order does not exist
        AlreadyFinalized: If the order is already delivered, whatever the target
        InvalidStatusTransition: If the target is unknown or earlier than the current status
    """
    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFound('Order', order_id)

        if order.is_delivered:
            raise AlreadyFinalized(order.id)

        rank = Order.STATUS_RANK
        if new_status not in rank:
            raise InvalidStatusTransition(
                order.status, new_status, message=f"Unknown order status '{new_status}'"
            )
        if rank[new_status] < rank[order.status]:
            raise InvalidStatusTransition(order.status, new_status)

        previous = order.status
        now = now or timezone.now()
        if new_status != previous:
            if new_status == Order.Status.SHIPPED:
                order.shipped_at = now
            elif new_status == Order.Status.DELIVERED:
                order.delivered_at = now

        order.status = new_status
        order.save()

        if new_status != previous:
            dispatch_status_update(order.id)

    acting = f"user #{user.pk}" if user is not None else 'system'
    logger.info(f"Order #{order.id}: {previous} -> {new_status} by {acting}")
    return order


def delete_order(order_id: int) -> None:
    """
    Remove an order record.

    Stock taken by the order is not returned to inventory.
    """
    try:
        order = Order.objects.get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFound('Order', order_id)

    order.delete()
    logger.warning(f"Order #{order_id} deleted; stock was not restored")

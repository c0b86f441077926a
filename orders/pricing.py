"""
Pricing Engine - itemized price breakdown for an order.

Pure functions over Decimal; amounts are rounded half-up to cents after
each derived step.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple

TAX_RATE = Decimal('0.10')
FREE_SHIPPING_THRESHOLD = Decimal('100')
SHIPPING_FEE = Decimal('10')

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')


def round_currency(amount) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    discount_amount: Decimal
    total_price: Decimal

    def as_dict(self) -> dict:
        return {
            'items_price': self.items_price,
            'tax_price': self.tax_price,
            'shipping_price': self.shipping_price,
            'discount_amount': self.discount_amount,
            'total_price': self.total_price,
        }


def calculate_items_price(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    """Sum of unit_price * quantity over (unit_price, quantity) pairs."""
    return round_currency(sum(
        (Decimal(unit_price) * quantity for unit_price, quantity in lines),
        ZERO
    ))


def calculate_tax(items_price: Decimal) -> Decimal:
    return round_currency(items_price * TAX_RATE)


def calculate_shipping(items_price: Decimal) -> Decimal:
    # Strictly above the threshold ships free; exactly 100 still pays.
    if items_price > FREE_SHIPPING_THRESHOLD:
        return ZERO
    return round_currency(SHIPPING_FEE)


def calculate_discount(items_price: Decimal, coupon=None, now=None) -> Decimal:
    """
    Discount granted by `coupon` on `items_price`.

    Zero when there is no coupon, it is not valid at `now`, or the items
    price is under its minimum purchase. Otherwise the percentage discount,
    capped at coupon.max_discount.
    """
    if coupon is None or not coupon.is_valid(now):
        return ZERO
    if items_price < coupon.min_purchase:
        return ZERO

    raw_discount = items_price * Decimal(coupon.discount) / Decimal(100)
    return round_currency(min(raw_discount, Decimal(coupon.max_discount)))


def calculate_prices(lines: Iterable[Tuple[Decimal, int]], coupon=None,
                     now=None) -> PriceBreakdown:
    """
    Compute the full price breakdown for an order.

    Args:
        lines: (unit_price, quantity) pairs, priced from the catalog
        coupon: Optional coupon; anything with is_valid(now), discount,
            min_purchase and max_discount
        now: Time used to check coupon validity (defaults to now)
    """
    items_price = calculate_items_price(lines)
    tax_price = calculate_tax(items_price)
    shipping_price = calculate_shipping(items_price)
    discount_amount = calculate_discount(items_price, coupon, now)

    total_price = max(ZERO, round_currency(
        items_price + tax_price + shipping_price - discount_amount
    ))

    return PriceBreakdown(
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping_price,
        discount_amount=discount_amount,
        total_price=total_price,
    )

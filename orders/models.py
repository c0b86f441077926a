"""
Order Models - Order, OrderItem and Coupon entities.

Order Status Flow (one-way):
    PROCESSING -> SHIPPED -> DELIVERED

A DELIVERED order is final and can no longer change status.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from inventory.models import Product


class CouponQuerySet(models.QuerySet):

    def valid_at(self, now=None):
        now = now or timezone.now()
        return self.filter(is_active=True, start_date__lte=now, end_date__gte=now)

    def find_valid_by_code(self, code: str, now=None):
        """Return the coupon for `code` if it is usable at `now`, else None."""
        if not code:
            return None
        return self.valid_at(now).filter(code=code.strip().upper()).first()


class Coupon(models.Model):
    """
    Percentage discount with a minimum purchase and a cap.

    Usable only while active and inside its validity window.
    """
    code = models.CharField(
        max_length=50,
        unique=True,
        help_text="Coupon code, stored upper-case"
    )
    discount = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(100)],
        help_text="Discount percentage (1-100)"
    )
    min_purchase = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Minimum items price for the coupon to apply"
    )
    max_discount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Maximum discount amount"
    )
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField()
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='coupons'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CouponQuerySet.as_manager()

    class Meta:
        verbose_name = 'Coupon'
        verbose_name_plural = 'Coupons'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} ({self.discount}%)"

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def is_valid(self, now=None) -> bool:
        now = now or timezone.now()
        return self.is_active and self.start_date <= now <= self.end_date


class Order(models.Model):
    """
    Customer order with snapshotted items and derived prices.

    The five price fields are computed by orders.pricing at creation time;
    total = items + tax + shipping - discount, never below zero.
    """

    class Status(models.TextChoices):
        PROCESSING = 'Processing', 'Processing'
        SHIPPED = 'Shipped', 'Shipped'
        DELIVERED = 'Delivered', 'Delivered'

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PAID = 'paid', 'Paid'

    # Position of each status in the lifecycle; transitions never go down.
    STATUS_RANK = {
        Status.PROCESSING.value: 0,
        Status.SHIPPED.value: 1,
        Status.DELIVERED.value: 2,
    }

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='orders',
        help_text="Customer who placed the order"
    )

    # Shipping info
    shipping_address = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_country = models.CharField(max_length=100)
    shipping_pin_code = models.CharField(max_length=20)
    shipping_phone_no = models.CharField(max_length=30)

    # Payment info
    payment_method = models.CharField(max_length=50)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True
    )
    payment_gateway_order_id = models.CharField(max_length=100, blank=True, default='')
    payment_id = models.CharField(max_length=100, blank=True, default='')
    paid_at = models.DateTimeField(null=True, blank=True)

    # Derived prices
    items_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
        help_text="Coupon applied at checkout"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PROCESSING,
        db_index=True,
        help_text="Current order status"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} ({self.status})"

    @property
    def is_delivered(self) -> bool:
        return self.status == self.Status.DELIVERED

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.PAID

    @property
    def shipping_info(self) -> dict:
        return {
            'address': self.shipping_address,
            'city': self.shipping_city,
            'state': self.shipping_state,
            'country': self.shipping_country,
            'pin_code': self.shipping_pin_code,
            'phone_no': self.shipping_phone_no,
        }


class OrderItem(models.Model):
    """
    Snapshot of a product at the moment it was ordered.

    Name, price and image are copied so later product edits or deletion
    do not change historical orders.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent order"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        null=True,
        related_name='order_items',
        help_text="Ordered product"
    )
    name = models.CharField(max_length=200)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Price per unit at time of order"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity ordered"
    )
    image = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.name} @ ${self.unit_price}"

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price

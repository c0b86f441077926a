"""
Inventory Models - Catalog and stock ledger entities.

Models:
    - Product: Items available for sale, with a denormalized stock count
    - Inventory: One stock record per product (1:1)
    - InventoryHistoryEntry: Append-only audit trail of quantity changes
    - ProductReview: One rating and comment per user and product
    - WishlistItem: A product saved to a user's wishlist

Product.stock mirrors Inventory.quantity. Both are written only by
inventory.services (the ledger); never assign them directly.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Product(models.Model):
    """
    Product entity representing items available for sale.
    """
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    description = models.TextField(
        blank=True,
        default='',
        help_text="Optional product description"
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Unit price (non-negative)"
    )
    stock = models.PositiveIntegerField(
        default=0,
        help_text="Units in stock, kept in sync with the inventory record"
    )
    images = models.JSONField(
        default=list,
        blank=True,
        help_text="List of {'public_id': ..., 'url': ...} image references"
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products',
        help_text="User who listed the product"
    )
    ratings = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Average review rating, kept in sync by inventory.catalog"
    )
    num_reviews = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['price'], name='product_price_idx'),
        ]

    def __str__(self):
        return f"{self.name} (${self.price})"

    @property
    def primary_image_url(self) -> str:
        if self.images:
            return self.images[0].get('url', '')
        return ''


class Inventory(models.Model):
    """
    Stock record for a single product.

    Invariant: quantity equals the sum of `change` over all history entries.
    """
    product = models.OneToOneField(
        Product,
        on_delete=models.CASCADE,
        related_name='inventory',
        help_text="Product this record tracks"
    )
    quantity = models.PositiveIntegerField(
        default=0,
        help_text="Current stock quantity"
    )
    low_stock_threshold = models.PositiveIntegerField(
        default=10,
        help_text="Threshold for low stock alerts"
    )
    last_updated = models.DateTimeField(auto_now=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Inventory'
        verbose_name_plural = 'Inventories'
        ordering = ['quantity']
        indexes = [
            models.Index(fields=['quantity'], name='inventory_quantity_idx'),
        ]

    def __str__(self):
        return f"{self.product.name}: {self.quantity} units"

    @property
    def is_low_stock(self) -> bool:
        """Check if inventory is at or below its low stock threshold."""
        return self.quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0


class ImmutableEntryError(Exception):
    """Raised when code tries to rewrite or remove a history entry."""


class InventoryHistoryEntry(models.Model):
    """
    One quantity change on an inventory record.

    Entries are append-only: saving an existing row or deleting one raises
    ImmutableEntryError.
    """
    inventory = models.ForeignKey(
        Inventory,
        on_delete=models.CASCADE,
        related_name='history',
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    quantity = models.PositiveIntegerField(
        help_text="Resulting quantity after this change"
    )
    change = models.IntegerField(help_text="Signed delta applied")
    reason = models.CharField(max_length=255, default='Inventory adjustment')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='inventory_changes',
        help_text="User who made the change"
    )

    class Meta:
        verbose_name = 'Inventory History Entry'
        verbose_name_plural = 'Inventory History'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.change:+d} -> {self.quantity} ({self.reason})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ImmutableEntryError("Inventory history entries cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEntryError("Inventory history entries cannot be deleted")


class ProductReview(models.Model):
    """
    A user's rating (1-5) and comment on a product.

    A user reviews a product at most once.
    """
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='reviews'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='product_reviews'
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    comment = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Product Review'
        verbose_name_plural = 'Product Reviews'
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['product', 'user'], name='unique_review_per_user'),
        ]

    def __str__(self):
        return f"{self.rating}/5 for {self.product_id} by {self.user_id}"


class WishlistItem(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='wishlist_items'
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='wishlist_entries'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Wishlist Item'
        verbose_name_plural = 'Wishlist Items'
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['user', 'product'], name='unique_wishlist_product'),
        ]

    def __str__(self):
        return f"Product {self.product_id} on wishlist of user {self.user_id}"

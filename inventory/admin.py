"""
Django Admin configuration for inventory models.

Quantities are read-only here; stock changes go through the inventory API
so that every change is recorded in the history.
"""
from django.contrib import admin
from .models import Product, Inventory, InventoryHistoryEntry, ProductReview


class ProductReviewInline(admin.TabularInline):
    model = ProductReview
    extra = 0
    readonly_fields = ['user', 'rating', 'comment', 'created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'price', 'stock', 'ratings', 'num_reviews', 'owner', 'created_at']
    list_filter = ['created_at']
    search_fields = ['name', 'description']
    ordering = ['name']
    raw_id_fields = ['owner']
    inlines = [ProductReviewInline]

    def get_readonly_fields(self, request, obj=None):
        # Opening stock may be set on creation only
        if obj is not None:
            return ['stock', 'ratings', 'num_reviews', 'created_at', 'updated_at']
        return ['ratings', 'num_reviews', 'created_at', 'updated_at']


class InventoryHistoryInline(admin.TabularInline):
    model = InventoryHistoryEntry
    extra = 0
    readonly_fields = ['created_at', 'quantity', 'change', 'reason', 'user']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'product', 'quantity', 'low_stock_threshold', 'is_low_stock', 'last_updated']
    list_filter = ['last_updated']
    search_fields = ['product__name']
    ordering = ['quantity']
    readonly_fields = ['product', 'quantity', 'last_updated', 'created_at']
    inlines = [InventoryHistoryInline]

    def has_add_permission(self, request):
        return False

    def is_low_stock(self, obj):
        return obj.is_low_stock
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'

"""
Django Admin configuration for order models.
"""
from django.contrib import admin
from .models import Coupon, Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product', 'name', 'quantity', 'unit_price', 'image', 'subtotal']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def subtotal(self, obj):
        return f"${obj.subtotal}"
    subtotal.short_description = 'Subtotal'


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'status', 'payment_status', 'total_price', 'item_count', 'created_at']
    list_filter = ['status', 'payment_status', 'created_at']
    search_fields = ['id', 'user__username', 'user__email']
    ordering = ['-created_at']
    readonly_fields = [
        'user', 'status', 'items_price', 'tax_price', 'shipping_price',
        'discount_amount', 'total_price', 'coupon', 'payment_status',
        'payment_id', 'payment_gateway_order_id', 'paid_at',
        'created_at', 'shipped_at', 'delivered_at', 'updated_at'
    ]
    inlines = [OrderItemInline]

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ['code', 'discount', 'min_purchase', 'max_discount', 'start_date', 'end_date', 'is_active']
    list_filter = ['is_active', 'start_date', 'end_date']
    search_fields = ['code']
    ordering = ['-created_at']
    raw_id_fields = ['created_by']

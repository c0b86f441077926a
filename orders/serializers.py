"""
Serializers for order models.
"""
from rest_framework import serializers
from rest_framework.validators import UniqueValidator

from .models import Coupon, Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    """Serializer for the item snapshots of an order."""
    product_id = serializers.IntegerField(read_only=True, allow_null=True)
    subtotal = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        read_only=True
    )

    class Meta:
        model = OrderItem
        fields = ['id', 'product_id', 'name', 'unit_price', 'quantity', 'image', 'subtotal']


class OrderItemCreateSerializer(serializers.Serializer):
    """Serializer for one line item in an order creation request."""
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class ShippingInfoSerializer(serializers.Serializer):
    address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    country = serializers.CharField(max_length=100)
    pin_code = serializers.CharField(max_length=20)
    phone_no = serializers.CharField(max_length=30)


class PaymentInfoSerializer(serializers.ModelSerializer):
    status = serializers.CharField(source='payment_status', read_only=True)
    method = serializers.CharField(source='payment_method', read_only=True)
    gateway_order_id = serializers.CharField(source='payment_gateway_order_id', read_only=True)

    class Meta:
        model = Order
        fields = ['payment_id', 'gateway_order_id', 'status', 'method', 'paid_at']


class OrderSerializer(serializers.ModelSerializer):
    """
    Serializer for Order model with nested items.
    Every field is read-only; prices are computed server-side.
    """
    user_id = serializers.IntegerField(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_info = ShippingInfoSerializer(read_only=True)
    payment_info = PaymentInfoSerializer(source='*', read_only=True)
    coupon_code = serializers.CharField(source='coupon.code', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'user_id', 'status', 'items', 'shipping_info', 'payment_info',
            'items_price', 'tax_price', 'shipping_price', 'discount_amount',
            'total_price', 'coupon_code',
            'created_at', 'shipped_at', 'delivered_at', 'updated_at'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """
    Compact serializer for listing orders.
    """
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'user_id', 'status', 'payment_status',
            'total_price', 'item_count', 'created_at'
        ]

    def get_item_count(self, obj):
        # Use prefetched items count if available
        if hasattr(obj, '_prefetched_objects_cache') and 'items' in obj._prefetched_objects_cache:
            return len(obj.items.all())
        return obj.items.count()


class OrderCreateSerializer(serializers.Serializer):
    """
    Serializer for creating orders via POST /orders/

    Request format:
    {
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 3, "quantity": 1}
        ],
        "shipping_info": {"address": "...", "city": "...", "state": "...",
                          "country": "...", "pin_code": "...", "phone_no": "..."},
        "payment_method": "card",
        "coupon_code": "SAVE10"
    }

    An empty items list is passed through so the service can report it.
    """
    items = OrderItemCreateSerializer(many=True, allow_empty=True)
    shipping_info = ShippingInfoSerializer()
    payment_method = serializers.CharField(max_length=50)
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True)

    def validate_items(self, value):
        product_ids = [item['product_id'] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError("Duplicate products in order items")
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)


class PaymentVerificationSerializer(serializers.Serializer):
    gateway_order_id = serializers.CharField(max_length=100)
    gateway_payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=256)


class CouponSerializer(serializers.ModelSerializer):
    """
    Codes are unique regardless of case; they are stored upper-case.
    """
    code = serializers.CharField(
        max_length=50,
        validators=[UniqueValidator(queryset=Coupon.objects.all(), lookup='iexact')]
    )

    class Meta:
        model = Coupon
        fields = [
            'id', 'code', 'discount', 'min_purchase', 'max_discount',
            'start_date', 'end_date', 'is_active', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def validate_code(self, value):
        return value.strip().upper()

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError("end_date must not be before start_date")
        return attrs

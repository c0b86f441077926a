"""
Serializers for inventory models.
Provides data validation and JSON conversion for API endpoints.
"""
from rest_framework import serializers

from .models import Inventory, InventoryHistoryEntry, Product, ProductReview


class ProductImageSerializer(serializers.Serializer):
    public_id = serializers.CharField(max_length=200, required=False, allow_blank=True)
    url = serializers.URLField(max_length=500)


class ProductSerializer(serializers.ModelSerializer):
    """
    Serializer for Product model.

    Stock can be set once when the product is created; afterwards it only
    changes through inventory adjustments.
    """
    images = serializers.ListField(child=ProductImageSerializer(), required=False)
    owner_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'description', 'price', 'stock', 'images',
            'ratings', 'num_reviews', 'owner_id', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'ratings', 'num_reviews', 'created_at', 'updated_at']

    def update(self, instance, validated_data):
        # Never write stock back from a possibly stale instance
        validated_data.pop('stock', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data, 'updated_at'])
        return instance


class ProductMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested representations."""
    class Meta:
        model = Product
        fields = ['id', 'name', 'price', 'stock']


class InventoryHistoryEntrySerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = InventoryHistoryEntry
        fields = ['id', 'created_at', 'quantity', 'change', 'reason', 'user_id']
        read_only_fields = fields


class InventorySerializer(serializers.ModelSerializer):
    """
    Serializer for an inventory record with its product.
    """
    product = ProductMinimalSerializer(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)
    is_out_of_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Inventory
        fields = [
            'id', 'product', 'quantity', 'low_stock_threshold',
            'is_low_stock', 'is_out_of_stock', 'last_updated'
        ]
        read_only_fields = fields


class InventoryAdjustSerializer(serializers.Serializer):
    """
    Request body for PUT /inventory/{product_id}/

    Negative quantities are passed through so the ledger can reject them.
    """
    quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class InventoryHistorySerializer(serializers.Serializer):
    """Serializer for an InventorySnapshot."""
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField()
    low_stock_threshold = serializers.IntegerField()
    count = serializers.SerializerMethodField()
    history = InventoryHistoryEntrySerializer(many=True)

    def get_count(self, obj):
        return len(obj.history)


class ProductReviewSerializer(serializers.ModelSerializer):
    """
    Serializer for product reviews.

    Request Body (POST /products/{id}/reviews/):
        {"rating": 4, "comment": "Sturdy and bright"}
    """
    user_id = serializers.IntegerField(read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = ProductReview
        fields = ['id', 'user_id', 'user_name', 'rating', 'comment', 'created_at']
        read_only_fields = ['id', 'created_at']

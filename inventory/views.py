"""
Inventory API Views.

Implements:
- CRUD operations for Product (stock is read-only after creation)
- Inventory listing, low-stock report, adjustment and history (admin)
- Product reviews and the caller's wishlist
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import SAFE_METHODS, AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ServiceError, error_response
from . import catalog, services
from .models import Product
from .serializers import (
    InventoryAdjustSerializer,
    InventoryHistorySerializer,
    InventorySerializer,
    ProductReviewSerializer,
    ProductSerializer,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(generics.ListCreateAPIView):
    """
    GET: List products, newest first
    POST: Create a product (admin); its inventory record is opened automatically

    Query Parameters (GET):
        - q: Keyword to search in the product name
        - min_price / max_price: Price range filters
    """
    serializer_class = ProductSerializer

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAdminUser()]

    def get_queryset(self):
        queryset = Product.objects.all()

        keyword = self.request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(name__icontains=keyword)

        min_price = self.request.query_params.get('min_price')
        if min_price:
            try:
                queryset = queryset.filter(price__gte=float(min_price))
            except ValueError:
                pass

        max_price = self.request.query_params.get('max_price')
        if max_price:
            try:
                queryset = queryset.filter(price__lte=float(max_price))
            except ValueError:
                pass

        return queryset.order_by('-created_at')

    def perform_create(self, serializer):
        serializer.save(owner=self.request.user)


class ProductDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a product
    PUT/PATCH: Update a product (admin); stock is ignored
    DELETE: Delete a product (admin)
    """
    queryset = Product.objects.all()
    serializer_class = ProductSerializer

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAdminUser()]


# =============================================================================
# Inventory Views
# =============================================================================

class InventoryListView(generics.ListAPIView):
    """GET: All inventory records, lowest quantity first (admin)."""
    serializer_class = InventorySerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        return services.list_inventory()


class LowStockListView(APIView):
    """
    GET: Records at or below a quantity threshold (admin).

    Query Parameters:
        - threshold: Quantity threshold (default 10)
    """
    permission_classes = [IsAdminUser]

    def get(self, request):
        threshold = request.query_params.get('threshold')
        if threshold in (None, ''):
            threshold = services.DEFAULT_LOW_STOCK_THRESHOLD
        else:
            try:
                threshold = int(threshold)
            except ValueError:
                return Response(
                    {'error': 'VALIDATION_ERROR', 'detail': 'threshold must be an integer'},
                    status=status.HTTP_400_BAD_REQUEST
                )

        records = services.list_low_stock(threshold)
        data = InventorySerializer(records, many=True).data
        return Response({'count': len(data), 'threshold': threshold, 'results': data})


class InventoryAdjustView(APIView):
    """
    GET: Current inventory record for a product (admin)
    PUT: Set the product's stock and record the change (admin)

    Request Body (PUT):
        {"quantity": 25, "reason": "Restock"}
    """
    permission_classes = [IsAdminUser]

    def get(self, request, product_id):
        try:
            inventory = services.get_record(product_id)
        except ServiceError as e:
            return error_response(e)
        return Response(InventorySerializer(inventory).data)

    def put(self, request, product_id):
        serializer = InventoryAdjustSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            inventory = services.adjust(
                product_id,
                serializer.validated_data['quantity'],
                reason=serializer.validated_data.get('reason') or None,
                user=request.user
            )
        except ServiceError as e:
            logger.warning(f"Inventory adjustment failed for product #{product_id}: {e}")
            return error_response(e)

        return Response(InventorySerializer(inventory).data)


class InventoryHistoryView(APIView):
    """GET: Full quantity history for a product, oldest first (admin)."""
    permission_classes = [IsAdminUser]

    def get(self, request, product_id):
        try:
            snapshot = services.query(product_id)
        except ServiceError as e:
            return error_response(e)
        return Response(InventoryHistorySerializer(snapshot).data)


# =============================================================================
# Review and Wishlist Views
# =============================================================================

class ProductReviewView(APIView):
    """
    GET: Reviews of a product, oldest first
    POST: Review a product (one review per user)

    Request Body (POST):
        {"rating": 4, "comment": "Sturdy and bright"}
    """

    def get_permissions(self):
        if self.request.method in SAFE_METHODS:
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk):
        try:
            reviews = catalog.list_reviews(pk)
        except ServiceError as e:
            return error_response(e)
        return Response(ProductReviewSerializer(reviews, many=True).data)

    def post(self, request, pk):
        """
        Returns:
            - 201: All reviews of the product, including the new one
            - 400: Invalid rating or product already reviewed by the caller
            - 404: Product not found
        """
        serializer = ProductReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            catalog.create_review(
                pk,
                request.user,
                serializer.validated_data['rating'],
                serializer.validated_data.get('comment', '')
            )
        except ServiceError as e:
            return error_response(e)

        reviews = catalog.list_reviews(pk)
        return Response(
            ProductReviewSerializer(reviews, many=True).data,
            status=status.HTTP_201_CREATED
        )


class WishlistView(APIView):
    """GET: The caller's wishlist."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        products = catalog.get_wishlist(request.user)
        return Response(ProductSerializer(products, many=True).data)


class WishlistItemView(APIView):
    """
    PUT: Add a product to the caller's wishlist
    DELETE: Remove a product from the caller's wishlist

    Both return the updated wishlist.
    """
    permission_classes = [IsAuthenticated]

    def put(self, request, product_id):
        try:
            products = catalog.add_to_wishlist(request.user, product_id)
        except ServiceError as e:
            return error_response(e)
        return Response(ProductSerializer(products, many=True).data)

    def delete(self, request, product_id):
        products = catalog.remove_from_wishlist(request.user, product_id)
        return Response(ProductSerializer(products, many=True).data)

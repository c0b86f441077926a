"""
Order API Views.

Implements:
- GET /orders/ - List all orders (admin)
- POST /orders/ - Create order with atomic transaction
- GET /orders/mine/ - List the caller's orders
- GET/DELETE /orders/{id}/ - Order detail / delete (admin)
- PUT /orders/{id}/status/ - Advance order status (admin)
- GET /orders/{id}/payment/ - Payment details
- POST /orders/{id}/payment/verify/ - Confirm gateway payment
- GET /orders/stats/ and /orders/revenue/ - Admin reporting
- GET/POST /coupons/ - Coupon management (admin)
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ServiceError, error_response, server_error_response
from core.rate_limiting import rate_limit
from . import payments, reports, services
from .models import Coupon, Order
from .serializers import (
    CouponSerializer,
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    PaymentInfoSerializer,
    PaymentVerificationSerializer,
)

logger = logging.getLogger(__name__)


class OrderListCreateView(generics.ListCreateAPIView):
    """
    GET: List all orders, newest first (admin)
    POST: Create a new order for the caller

    Query Parameters (GET):
        - status: Filter by status (Processing, Shipped, Delivered)

    Request Body (POST): see OrderCreateSerializer
    """

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated()]
        return [IsAdminUser()]

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return OrderCreateSerializer
        return OrderListSerializer

    def get_queryset(self):
        queryset = Order.objects.prefetch_related('items')

        status_filter = self.request.query_params.get('status', '').capitalize()
        if status_filter in Order.Status.values:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('-created_at')

    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Order created
            - 400: Validation error, empty order or insufficient stock
            - 404: Product not found
        """
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = services.create_order(
                request.user,
                data['items'],
                data['shipping_info'],
                data['payment_method'],
                coupon_code=data.get('coupon_code') or None,
            )
        except ServiceError as e:
            logger.warning(f"Order creation failed: {e}")
            return error_response(e)
        except Exception as e:
            return server_error_response(e)

        order = services.get_order(order.id)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class MyOrderListView(generics.ListAPIView):
    """GET: List the caller's own orders."""
    serializer_class = OrderListSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).prefetch_related('items')


class OrderDetailView(APIView):
    """
    GET: Retrieve an order (owner or admin)
    DELETE: Delete an order (admin); stock is not restored
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        try:
            order = services.get_order_for_user(pk, request.user)
        except ServiceError as e:
            return error_response(e)
        return Response(OrderSerializer(order).data)

    def delete(self, request, pk):
        if not request.user.is_staff:
            return Response(
                {'error': 'UNAUTHORIZED', 'detail': 'Admin access required'},
                status=status.HTTP_403_FORBIDDEN
            )
        try:
            services.delete_order(pk)
        except ServiceError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class OrderStatusView(APIView):
    """
    PUT: Advance an order's status (admin).

    Request Body:
        {"status": "Shipped"}
    """
    permission_classes = [IsAdminUser]

    def put(self, request, pk):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = services.update_status(pk, serializer.validated_data['status'], user=request.user)
        except ServiceError as e:
            return error_response(e)

        return Response(OrderSerializer(services.get_order(order.id)).data)


class PaymentDetailView(APIView):
    """GET: Payment info for an order (owner or admin)."""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        try:
            order = services.get_order_for_user(pk, request.user)
        except ServiceError as e:
            return error_response(e)
        return Response(PaymentInfoSerializer(order).data)


class PaymentVerifyView(APIView):
    """
    POST: Confirm a gateway payment for the caller's order.

    Request Body:
        {"gateway_order_id": "...", "gateway_payment_id": "...", "signature": "..."}

    Rate limited to 10 requests per minute per user.
    """
    permission_classes = [IsAuthenticated]

    @rate_limit(max_requests=10, window_seconds=60)
    def post(self, request, pk):
        serializer = PaymentVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = payments.confirm_payment(
                pk,
                request.user,
                data['gateway_order_id'],
                data['gateway_payment_id'],
                data['signature'],
            )
        except ServiceError as e:
            return error_response(e)

        return Response(PaymentInfoSerializer(order).data)


class OrderStatsView(APIView):
    """GET: Dashboard statistics (admin)."""
    permission_classes = [IsAdminUser]

    def get(self, request):
        stats = reports.dashboard_stats()
        stats['total_revenue'] = str(stats['total_revenue'])
        return Response(stats)


class MonthlyRevenueView(APIView):
    """GET: Paid revenue per month over the last year (admin)."""
    permission_classes = [IsAdminUser]

    def get(self, request):
        rows = reports.monthly_revenue()
        return Response([
            {'month': row['month'], 'total': str(row['total']), 'count': row['count']}
            for row in rows
        ])


class CouponListCreateView(generics.ListCreateAPIView):
    """
    GET: List coupons (admin)
    POST: Create a coupon (admin)
    """
    queryset = Coupon.objects.all()
    serializer_class = CouponSerializer
    permission_classes = [IsAdminUser]

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

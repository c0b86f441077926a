"""
Admin reporting queries over orders and inventory.
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Count, F, Q, Sum
from django.db.models.functions import TruncMonth
from django.utils import timezone

from inventory.models import Inventory, Product
from .models import Order


def dashboard_stats() -> dict:
    stats = Order.objects.aggregate(
        total_orders=Count('id'),
        processing_orders=Count('id', filter=Q(status=Order.Status.PROCESSING)),
        shipped_orders=Count('id', filter=Q(status=Order.Status.SHIPPED)),
        delivered_orders=Count('id', filter=Q(status=Order.Status.DELIVERED)),
        total_revenue=Sum('total_price', filter=Q(payment_status=Order.PaymentStatus.PAID)),
    )
    stats['total_revenue'] = stats['total_revenue'] or Decimal('0.00')
    stats['total_products'] = Product.objects.count()
    stats['total_users'] = get_user_model().objects.count()
    stats['low_stock_items'] = Inventory.objects.filter(
        quantity__lte=F('low_stock_threshold')
    ).count()
    return stats


def monthly_revenue(now=None) -> list:
    """Paid order totals per calendar month over the last year, oldest first."""
    now = now or timezone.now()
    since = now - timedelta(days=365)

    rows = (
        Order.objects
        .filter(payment_status=Order.PaymentStatus.PAID, created_at__gte=since)
        .annotate(month=TruncMonth('created_at'))
        .values('month')
        .annotate(total=Sum('total_price'), count=Count('id'))
        .order_by('month')
    )
    return [
        {'month': row['month'].strftime('%Y-%m'), 'total': row['total'], 'count': row['count']}
        for row in rows
    ]

"""
URL routing for order API endpoints.
"""
from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    path('orders/', views.OrderListCreateView.as_view(), name='order-list'),
    path('orders/mine/', views.MyOrderListView.as_view(), name='order-mine'),
    path('orders/stats/', views.OrderStatsView.as_view(), name='order-stats'),
    path('orders/revenue/', views.MonthlyRevenueView.as_view(), name='order-revenue'),
    path('orders/<int:pk>/', views.OrderDetailView.as_view(), name='order-detail'),
    path('orders/<int:pk>/status/', views.OrderStatusView.as_view(), name='order-status'),
    path('orders/<int:pk>/payment/', views.PaymentDetailView.as_view(), name='order-payment'),
    path('orders/<int:pk>/payment/verify/', views.PaymentVerifyView.as_view(), name='order-payment-verify'),

    path('coupons/', views.CouponListCreateView.as_view(), name='coupon-list'),
]

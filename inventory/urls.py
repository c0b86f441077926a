"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Products
    path('products/', views.ProductListCreateView.as_view(), name='product-list'),
    path('products/<int:pk>/', views.ProductDetailView.as_view(), name='product-detail'),
    path('products/<int:pk>/reviews/', views.ProductReviewView.as_view(), name='product-reviews'),

    # Inventory
    path('inventory/', views.InventoryListView.as_view(), name='inventory-list'),
    path('inventory/low-stock/', views.LowStockListView.as_view(), name='inventory-low-stock'),
    path('inventory/<int:product_id>/', views.InventoryAdjustView.as_view(), name='inventory-detail'),
    path('inventory/<int:product_id>/history/', views.InventoryHistoryView.as_view(), name='inventory-history'),

    # Wishlist
    path('wishlist/', views.WishlistView.as_view(), name='wishlist'),
    path('wishlist/<int:product_id>/', views.WishlistItemView.as_view(), name='wishlist-item'),
]

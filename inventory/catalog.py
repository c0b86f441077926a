"""
Catalog Service - product reviews and customer wishlists.

Reviews:
1. Lock the product row (same lock the ledger takes first)
2. Reject a second review from the same user
3. Store the review and refresh Product.ratings / Product.num_reviews

Wishlists hold each product at most once per user; adding is idempotent.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from django.db import transaction
from django.db.models import Avg, Count

from core.exceptions import AlreadyReviewed, NotFound
from .models import Product, ProductReview, WishlistItem

logger = logging.getLogger(__name__)

RATING_PLACES = Decimal('0.01')


def _get_product(product_id: int, lock: bool = False) -> Product:
    queryset = Product.objects.select_for_update() if lock else Product.objects
    product = queryset.filter(pk=product_id).first()
    if product is None:
        raise NotFound('Product', product_id)
    return product


def list_reviews(product_id: int):
    product = _get_product(product_id)
    return product.reviews.select_related('user').order_by('created_at', 'id')


def create_review(product_id: int, user, rating: int, comment: str = '') -> ProductReview:
    """
    Add a user's review and recompute the product's average rating.

    Raises:
        NotFound: If the product does not exist
        AlreadyReviewed: If the user has already reviewed the product
    """
    with transaction.atomic():
        product = _get_product(product_id, lock=True)

        if product.reviews.filter(user=user).exists():
            raise AlreadyReviewed(product_id)

        review = ProductReview.objects.create(
            product=product,
            user=user,
            rating=rating,
            comment=comment
        )

        summary = product.reviews.aggregate(average=Avg('rating'), count=Count('id'))
        ratings = Decimal(str(summary['average'])).quantize(RATING_PLACES, rounding=ROUND_HALF_UP)
        Product.objects.filter(pk=product_id).update(
            ratings=ratings,
            num_reviews=summary['count']
        )

    logger.info(
        f"User #{user.pk} rated product #{product_id} {rating}/5; "
        f"average now {ratings} over {summary['count']} review(s)"
    )
    return review


def get_wishlist(user) -> List[Product]:
    """The user's wishlisted products, in the order they were added."""
    items = WishlistItem.objects.filter(user=user).select_related('product').order_by('created_at', 'id')
    return [item.product for item in items]


def add_to_wishlist(user, product_id: int) -> List[Product]:
    """
    Raises:
        NotFound: If the product does not exist
    """
    product = _get_product(product_id)
    _, created = WishlistItem.objects.get_or_create(user=user, product=product)
    if created:
        logger.info(f"User #{user.pk} added product #{product_id} to wishlist")
    return get_wishlist(user)


def remove_from_wishlist(user, product_id: int) -> List[Product]:
    """Removing a product that is not on the wishlist is a no-op."""
    WishlistItem.objects.filter(user=user, product_id=product_id).delete()
    return get_wishlist(user)

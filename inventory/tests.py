"""
Tests for the inventory ledger.

Test Cases:
1. Inventory record opened alongside each product
2. Adjustments append history and keep Product.stock in sync
3. History sum always equals the current quantity
4. Conditional decrement never drives stock negative
5. Failed history append leaves stock untouched
6. Reconciliation repairs drift from the history
7. Reviews keep the product's average rating; one review per user
8. Wishlists hold each product once
"""
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import AlreadyReviewed, ErrorKind, InsufficientStock, InvalidQuantity, NotFound
from inventory import catalog, services
from inventory.models import (
    ImmutableEntryError,
    Inventory,
    InventoryHistoryEntry,
    Product,
    WishlistItem,
)
from inventory.tasks import reconcile_inventory

User = get_user_model()


class InventoryLedgerTestCase(TestCase):
    """Test cases for adjust/query/list operations."""

    def setUp(self):
        self.user = User.objects.create_user(
            username='stockkeeper',
            email='keeper@example.com',
            password='secret',
            is_staff=True
        )
        self.product = Product.objects.create(
            name='Desk Lamp',
            price=Decimal('25.00'),
            stock=20
        )

    def test_product_creation_opens_inventory_record(self):
        inventory = Inventory.objects.get(product=self.product)
        self.assertEqual(inventory.quantity, 20)

        history = list(inventory.history.all())
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].change, 20)
        self.assertEqual(history[0].quantity, 20)
        self.assertEqual(history[0].reason, services.OPENING_STOCK_REASON)

    def test_adjust_records_delta_and_syncs_product(self):
        services.adjust(self.product.id, 35, reason='Restock', user=self.user)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 35)

        snapshot = services.query(self.product.id)
        self.assertEqual(snapshot.quantity, 35)
        latest = snapshot.history[-1]
        self.assertEqual(latest.change, 15)
        self.assertEqual(latest.quantity, 35)
        self.assertEqual(latest.reason, 'Restock')
        self.assertEqual(latest.user, self.user)

    def test_adjust_downwards_records_negative_change(self):
        services.adjust(self.product.id, 4, user=self.user)

        latest = services.query(self.product.id).history[-1]
        self.assertEqual(latest.change, -16)
        self.assertEqual(latest.reason, services.DEFAULT_ADJUSTMENT_REASON)

    def test_adjust_negative_quantity_rejected(self):
        with self.assertRaises(InvalidQuantity):
            services.adjust(self.product.id, -1, user=self.user)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)
        self.assertEqual(len(services.query(self.product.id).history), 1)

    def test_adjust_without_record_not_found(self):
        Inventory.objects.filter(product=self.product).delete()

        with self.assertRaises(NotFound) as context:
            services.adjust(self.product.id, 5)
        self.assertEqual(context.exception.kind, ErrorKind.NOT_FOUND)

    def test_adjust_unknown_product_not_found(self):
        with self.assertRaises(NotFound):
            services.adjust(999999, 5)

    def test_history_sum_matches_quantity_after_every_adjust(self):
        """
        Given: A sequence of adjustments up, down, to zero and unchanged
        Then: Each entry's quantity is the quantity right after it, and
              the running sum of changes equals it too
        """
        targets = [5, 12, 0, 7, 7, 30]
        for target in targets:
            services.adjust(self.product.id, target, user=self.user)
            snapshot = services.query(self.product.id)
            self.assertEqual(snapshot.history[-1].quantity, target)
            self.assertEqual(sum(entry.change for entry in snapshot.history), snapshot.quantity)

        running = 0
        for entry in services.query(self.product.id).history:
            running += entry.change
            self.assertEqual(entry.quantity, running)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 30)

    def test_query_is_idempotent(self):
        services.adjust(self.product.id, 8, reason='Cycle count')

        first = services.query(self.product.id)
        second = services.query(self.product.id)

        self.assertEqual(first.quantity, second.quantity)
        self.assertEqual(first.history, second.history)

    def test_query_history_oldest_first(self):
        services.adjust(self.product.id, 10, reason='first')
        services.adjust(self.product.id, 11, reason='second')

        reasons = [entry.reason for entry in services.query(self.product.id).history]
        self.assertEqual(reasons, [services.OPENING_STOCK_REASON, 'first', 'second'])

    def test_query_unknown_product_not_found(self):
        with self.assertRaises(NotFound):
            services.query(999999)

    def test_decrement_takes_units_out(self):
        services.decrement(self.product.id, 5, reason='Order #1')

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 15)
        latest = services.query(self.product.id).history[-1]
        self.assertEqual(latest.change, -5)
        self.assertEqual(latest.reason, 'Order #1')

    def test_decrement_beyond_stock_rejected(self):
        with self.assertRaises(InsufficientStock) as context:
            services.decrement(self.product.id, 21)

        error = context.exception
        self.assertEqual(error.product_name, 'Desk Lamp')
        self.assertEqual(error.requested, 21)
        self.assertEqual(error.available, 20)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)
        self.assertEqual(len(services.query(self.product.id).history), 1)

    def test_decrement_opens_missing_record(self):
        Inventory.objects.filter(product=self.product).delete()

        services.decrement(self.product.id, 3)

        snapshot = services.query(self.product.id)
        self.assertEqual(snapshot.quantity, 17)
        self.assertEqual([entry.change for entry in snapshot.history], [20, -3])

    def test_history_entries_are_immutable(self):
        entry = services.query(self.product.id).history[0]

        entry.reason = 'rewritten'
        with self.assertRaises(ImmutableEntryError):
            entry.save()
        with self.assertRaises(ImmutableEntryError):
            entry.delete()

        self.assertEqual(
            InventoryHistoryEntry.objects.get(pk=entry.pk).reason,
            services.OPENING_STOCK_REASON
        )

    def test_list_low_stock_default_threshold(self):
        for name, stock in [('Pen', 3), ('Stapler', 10), ('Folder', 11), ('Ink', 0)]:
            Product.objects.create(name=name, price=Decimal('1.00'), stock=stock)

        quantities = [record.quantity for record in services.list_low_stock()]
        self.assertEqual(quantities, [0, 3, 10])

    def test_list_low_stock_custom_threshold(self):
        Product.objects.create(name='Pen', price=Decimal('1.00'), stock=3)

        names = [record.product.name for record in services.list_low_stock(25)]
        self.assertEqual(names, ['Pen', 'Desk Lamp'])

    def test_failed_history_append_leaves_stock_untouched(self):
        """
        Given: The history insert fails mid-adjustment
        Then: Neither the record nor Product.stock keeps the new quantity
        """
        with patch.object(
            InventoryHistoryEntry.objects, 'create', side_effect=DatabaseError('disk full')
        ):
            with self.assertRaises(DatabaseError):
                services.adjust(self.product.id, 50)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 20)
        self.assertEqual(Inventory.objects.get(product=self.product).quantity, 20)

    def assert_product_locked_before_inventory(self, operation):
        with CaptureQueriesContext(connection) as context:
            operation()

        statements = [query['sql'] for query in context.captured_queries]
        product_reads = [i for i, sql in enumerate(statements) if 'FROM "inventory_product"' in sql]
        inventory_reads = [i for i, sql in enumerate(statements) if 'FROM "inventory_inventory"' in sql]
        self.assertTrue(product_reads)
        self.assertTrue(inventory_reads)
        self.assertLess(product_reads[0], inventory_reads[0])

    def test_writers_lock_product_before_inventory(self):
        """
        Given: Order creation locks Product rows before Inventory rows
        Then: adjust, decrement and reconcile take the same order
        """
        self.assert_product_locked_before_inventory(
            lambda: services.adjust(self.product.id, 30)
        )
        self.assert_product_locked_before_inventory(
            lambda: services.decrement(self.product.id, 1)
        )
        self.assert_product_locked_before_inventory(
            lambda: services.reconcile(self.product.id)
        )


class ReconciliationTestCase(TestCase):
    """Test cases for re-deriving stock from history."""

    def setUp(self):
        self.product = Product.objects.create(name='Notebook', price=Decimal('4.50'), stock=12)
        services.adjust(self.product.id, 9, reason='Shrinkage')

    def test_consistent_record_is_untouched(self):
        result = services.reconcile(self.product.id)

        self.assertFalse(result.corrected)
        self.assertEqual(result.derived_quantity, 9)

    def test_product_stock_drift_is_repaired(self):
        Product.objects.filter(pk=self.product.pk).update(stock=99)

        result = services.reconcile(self.product.id)

        self.assertTrue(result.corrected)
        self.assertEqual(result.product_stock, 99)
        self.assertEqual(result.derived_quantity, 9)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 9)

    def test_record_quantity_drift_is_repaired(self):
        Inventory.objects.filter(product=self.product).update(quantity=4)

        services.reconcile(self.product.id)

        self.assertEqual(Inventory.objects.get(product=self.product).quantity, 9)
        self.assertEqual(len(services.query(self.product.id).history), 2)

    def test_reconcile_all_reports_only_corrected(self):
        other = Product.objects.create(name='Eraser', price=Decimal('0.50'), stock=5)
        Product.objects.filter(pk=other.pk).update(stock=1)

        results = services.reconcile_all()

        self.assertEqual([result.product_id for result in results], [other.id])

    def test_reconcile_task(self):
        Product.objects.filter(pk=self.product.pk).update(stock=0)

        result = reconcile_inventory()

        self.assertEqual(result, {'corrected': [self.product.id]})

    def test_reconcile_command(self):
        Product.objects.filter(pk=self.product.pk).update(stock=0)
        out = StringIO()

        call_command('reconcile_inventory', stdout=out)

        self.assertIn('Corrected 1 record(s)', out.getvalue())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 9)

    def test_reconcile_command_consistent(self):
        out = StringIO()
        call_command('reconcile_inventory', '--product', str(self.product.id), stdout=out)
        self.assertIn('consistent', out.getvalue())


class InventoryAPITestCase(APITestCase):
    """Test cases for the product and inventory endpoints."""

    def setUp(self):
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='secret', is_staff=True
        )
        self.customer = User.objects.create_user(
            username='customer', email='customer@example.com', password='secret'
        )
        self.product = Product.objects.create(name='Monitor', price=Decimal('150.00'), stock=8)
        self.client.force_authenticate(self.admin)

    def test_adjust_inventory(self):
        url = reverse('inventory:inventory-detail', args=[self.product.id])
        response = self.client.put(url, {'quantity': 14, 'reason': 'Restock'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], 14)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 14)

        history = services.query(self.product.id).history
        self.assertEqual(history[-1].user, self.admin)

    def test_adjust_negative_quantity(self):
        url = reverse('inventory:inventory-detail', args=[self.product.id])
        response = self.client.put(url, {'quantity': -3}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'INVALID_QUANTITY')

    def test_adjust_unknown_product(self):
        url = reverse('inventory:inventory-detail', args=[424242])
        response = self.client.put(url, {'quantity': 3}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'NOT_FOUND')

    def test_adjust_requires_admin(self):
        self.client.force_authenticate(self.customer)
        url = reverse('inventory:inventory-detail', args=[self.product.id])
        response = self.client.put(url, {'quantity': 3}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_history_endpoint(self):
        services.adjust(self.product.id, 2, reason='Damaged')
        url = reverse('inventory:inventory-history', args=[self.product.id])
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual([entry['change'] for entry in response.data['history']], [8, -6])

    def test_low_stock_endpoint(self):
        Product.objects.create(name='Cable', price=Decimal('3.00'), stock=2)

        response = self.client.get(reverse('inventory:inventory-low-stock'))
        self.assertEqual(response.data['threshold'], 10)
        self.assertEqual([r['quantity'] for r in response.data['results']], [2, 8])

        response = self.client.get(reverse('inventory:inventory-low-stock'), {'threshold': 5})
        self.assertEqual([r['quantity'] for r in response.data['results']], [2])

    def test_low_stock_bad_threshold(self):
        response = self.client.get(reverse('inventory:inventory-low-stock'), {'threshold': 'lots'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_product_opens_inventory(self):
        response = self.client.post(
            reverse('inventory:product-list'),
            {
                'name': 'Webcam',
                'price': '45.00',
                'stock': 6,
                'images': [{'public_id': 'webcam-1', 'url': 'https://cdn.example.com/webcam.jpg'}],
            },
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(pk=response.data['id'])
        self.assertEqual(product.owner, self.admin)
        self.assertEqual(product.primary_image_url, 'https://cdn.example.com/webcam.jpg')
        self.assertEqual(services.query(product.id).quantity, 6)

    def test_update_product_ignores_stock(self):
        url = reverse('inventory:product-detail', args=[self.product.id])
        response = self.client.patch(url, {'stock': 500, 'price': '140.00'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)
        self.assertEqual(self.product.price, Decimal('140.00'))

    def test_product_list_is_public(self):
        self.client.force_authenticate(None)
        response = self.client.get(reverse('inventory:product-list'), {'q': 'moni'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)


class CatalogTestCase(TestCase):
    """Test cases for reviews and wishlists."""

    def setUp(self):
        self.alice = User.objects.create_user(username='alice', email='alice@example.com')
        self.bob = User.objects.create_user(username='bob', email='bob@example.com')
        self.lamp = Product.objects.create(name='Desk Lamp', price=Decimal('25.00'), stock=5)
        self.pen = Product.objects.create(name='Pen', price=Decimal('1.00'), stock=50)

    def test_reviews_update_average_rating(self):
        catalog.create_review(self.lamp.id, self.alice, 5, 'Bright')
        catalog.create_review(self.lamp.id, self.bob, 2)

        self.lamp.refresh_from_db()
        self.assertEqual(self.lamp.num_reviews, 2)
        self.assertEqual(self.lamp.ratings, Decimal('3.50'))
        self.assertEqual(self.lamp.stock, 5)

    def test_average_rating_rounds_to_cents(self):
        catalog.create_review(self.lamp.id, self.alice, 5)
        catalog.create_review(self.lamp.id, self.bob, 4)
        carol = User.objects.create_user(username='carol', email='carol@example.com')
        catalog.create_review(self.lamp.id, carol, 4)

        self.lamp.refresh_from_db()
        self.assertEqual(self.lamp.ratings, Decimal('4.33'))

    def test_second_review_by_same_user_rejected(self):
        """
        Given: Alice already reviewed the lamp
        When: She reviews it again
        Then: AlreadyReviewed is raised and the rating is unchanged
        """
        catalog.create_review(self.lamp.id, self.alice, 4)

        with self.assertRaises(AlreadyReviewed):
            catalog.create_review(self.lamp.id, self.alice, 1)

        self.lamp.refresh_from_db()
        self.assertEqual(self.lamp.num_reviews, 1)
        self.assertEqual(self.lamp.ratings, Decimal('4.00'))

    def test_review_unknown_product(self):
        with self.assertRaises(NotFound):
            catalog.create_review(999999, self.alice, 3)

    def test_wishlist_add_is_idempotent(self):
        catalog.add_to_wishlist(self.alice, self.lamp.id)
        catalog.add_to_wishlist(self.alice, self.pen.id)
        wishlist = catalog.add_to_wishlist(self.alice, self.lamp.id)

        self.assertEqual([product.name for product in wishlist], ['Desk Lamp', 'Pen'])
        self.assertEqual(WishlistItem.objects.filter(user=self.alice).count(), 2)
        self.assertEqual(catalog.get_wishlist(self.bob), [])

    def test_wishlist_remove(self):
        catalog.add_to_wishlist(self.alice, self.lamp.id)

        self.assertEqual(catalog.remove_from_wishlist(self.alice, self.lamp.id), [])
        self.assertEqual(catalog.remove_from_wishlist(self.alice, self.lamp.id), [])

    def test_wishlist_unknown_product(self):
        with self.assertRaises(NotFound):
            catalog.add_to_wishlist(self.alice, 999999)


class CatalogAPITestCase(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='shopper', email='shopper@example.com')
        self.product = Product.objects.create(name='Desk Lamp', price=Decimal('25.00'), stock=5)
        self.reviews_url = reverse('inventory:product-reviews', args=[self.product.id])

    def test_create_review(self):
        self.client.force_authenticate(self.user)

        response = self.client.post(self.reviews_url, {'rating': 4, 'comment': 'Good'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['user_name'], 'shopper')

        product = self.client.get(reverse('inventory:product-detail', args=[self.product.id]))
        self.assertEqual(product.data['num_reviews'], 1)
        self.assertEqual(product.data['ratings'], '4.00')

    def test_duplicate_review_rejected(self):
        self.client.force_authenticate(self.user)
        self.client.post(self.reviews_url, {'rating': 4}, format='json')

        response = self.client.post(self.reviews_url, {'rating': 5}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'ALREADY_REVIEWED')

    def test_rating_out_of_range(self):
        self.client.force_authenticate(self.user)

        response = self.client.post(self.reviews_url, {'rating': 6}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('rating', response.data)

    def test_review_requires_login(self):
        response = self.client.post(self.reviews_url, {'rating': 4}, format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_reviews_are_public(self):
        catalog.create_review(self.product.id, self.user, 3)

        response = self.client.get(self.reviews_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['rating'], 3)

    def test_reviews_of_unknown_product(self):
        response = self.client.get(reverse('inventory:product-reviews', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_wishlist_endpoints(self):
        self.client.force_authenticate(self.user)
        item_url = reverse('inventory:wishlist-item', args=[self.product.id])

        added = self.client.put(item_url)
        listed = self.client.get(reverse('inventory:wishlist'))
        removed = self.client.delete(item_url)

        self.assertEqual(added.status_code, status.HTTP_200_OK)
        self.assertEqual([product['id'] for product in listed.data], [self.product.id])
        self.assertEqual(removed.data, [])

    def test_wishlist_unknown_product(self):
        self.client.force_authenticate(self.user)

        response = self.client.put(reverse('inventory:wishlist-item', args=[999999]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'NOT_FOUND')

    def test_wishlist_requires_login(self):
        response = self.client.get(reverse('inventory:wishlist'))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

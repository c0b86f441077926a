"""
Tests for pricing, order lifecycle, payments and reporting.

Test Cases:
1. Price breakdown, free-shipping boundary and coupon rules
2. Order creation prices from the catalog and snapshots items
3. Any failing line rejects the whole order with no stock change
4. Stale stock reads cannot oversell
5. Status only moves forward; delivered orders are final
6. Notifications are best-effort
7. Gateway signature verification

ConcurrentOrderTestCase needs real row locks and is skipped on SQLite. Run it
against PostgreSQL by pointing the settings at a server:

    POSTGRES_DB=shop POSTGRES_USER=postgres POSTGRES_PASSWORD=postgres \\
        pytest orders/tests.py -k ConcurrentOrder
"""
import threading
from datetime import timedelta
from decimal import Decimal
from smtplib import SMTPException
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, skipUnlessDBFeature
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from core.exceptions import (
    AlreadyFinalized,
    AlreadyPaid,
    EmptyOrder,
    InsufficientStock,
    InvalidStatusTransition,
    NotFound,
    PaymentVerificationFailed,
    Unauthorized,
)
from inventory import services as ledger
from inventory.models import Product
from orders import payments, reports
from orders.models import Coupon, Order, OrderItem
from orders.pricing import calculate_prices
from orders.services import create_order, delete_order, update_status
from orders.tasks import send_order_confirmation

User = get_user_model()

SHIPPING_INFO = {
    'address': '221B Baker Street',
    'city': 'London',
    'state': 'Greater London',
    'country': 'UK',
    'pin_code': '110001',
    'phone_no': '+44 20 7946 0000',
}


def make_coupon(discount=10, min_purchase='0', max_discount='1000', valid=True):
    """Stand-in coupon for pure pricing tests."""
    return SimpleNamespace(
        discount=discount,
        min_purchase=Decimal(min_purchase),
        max_discount=Decimal(max_discount),
        is_valid=lambda now=None: valid,
    )


class PricingTestCase(SimpleTestCase):
    """Test cases for the pure price calculation."""

    def test_breakdown_without_coupon(self):
        prices = calculate_prices([(Decimal('20'), 2), (Decimal('5'), 3)])

        self.assertEqual(prices.items_price, Decimal('55.00'))
        self.assertEqual(prices.tax_price, Decimal('5.50'))
        self.assertEqual(prices.shipping_price, Decimal('10.00'))
        self.assertEqual(prices.discount_amount, Decimal('0.00'))
        self.assertEqual(prices.total_price, Decimal('70.50'))

    def test_free_shipping_boundary_is_strict(self):
        at_threshold = calculate_prices([(Decimal('100.00'), 1)])
        above_threshold = calculate_prices([(Decimal('100.01'), 1)])

        self.assertEqual(at_threshold.shipping_price, Decimal('10.00'))
        self.assertEqual(above_threshold.shipping_price, Decimal('0.00'))

    def test_coupon_discount_is_capped(self):
        coupon = make_coupon(discount=50, max_discount='30')

        prices = calculate_prices([(Decimal('200'), 1)], coupon=coupon)

        self.assertEqual(prices.discount_amount, Decimal('30.00'))
        self.assertEqual(prices.total_price, Decimal('190.00'))

    def test_coupon_below_minimum_purchase(self):
        coupon = make_coupon(discount=90, min_purchase='100')

        prices = calculate_prices([(Decimal('50'), 1)], coupon=coupon)

        self.assertEqual(prices.discount_amount, Decimal('0.00'))
        self.assertEqual(prices.total_price, Decimal('65.00'))

    def test_coupon_at_minimum_purchase_applies(self):
        coupon = make_coupon(discount=10, min_purchase='100')

        prices = calculate_prices([(Decimal('100'), 1)], coupon=coupon)

        self.assertEqual(prices.discount_amount, Decimal('10.00'))

    def test_invalid_coupon_gives_no_discount(self):
        coupon = make_coupon(discount=50, valid=False)

        prices = calculate_prices([(Decimal('80'), 1)], coupon=coupon)

        self.assertEqual(prices.discount_amount, Decimal('0.00'))

    def test_full_discount_keeps_total_non_negative(self):
        coupon = make_coupon(discount=100)

        prices = calculate_prices([(Decimal('10'), 1)], coupon=coupon)

        self.assertEqual(prices.discount_amount, Decimal('10.00'))
        self.assertEqual(prices.total_price, Decimal('11.00'))

    def test_rounds_half_up(self):
        # 10% of 0.05 is 0.005; half-up gives 0.01 where banker's would give 0.00
        prices = calculate_prices([(Decimal('0.05'), 1)])

        self.assertEqual(prices.tax_price, Decimal('0.01'))

    def test_percentage_discount_rounding(self):
        coupon = make_coupon(discount=15)

        prices = calculate_prices([(Decimal('33.33'), 1)], coupon=coupon)

        # 33.33 * 15% = 4.9995
        self.assertEqual(prices.discount_amount, Decimal('5.00'))


class CouponModelTestCase(TestCase):

    def setUp(self):
        self.now = timezone.now()

    def test_code_is_stored_upper_case(self):
        coupon = Coupon.objects.create(
            code=' welcome ', discount=10, max_discount=Decimal('20'),
            end_date=self.now + timedelta(days=1)
        )
        self.assertEqual(coupon.code, 'WELCOME')

    def test_find_valid_by_code(self):
        Coupon.objects.create(
            code='SPRING', discount=10, max_discount=Decimal('20'),
            start_date=self.now - timedelta(days=1), end_date=self.now + timedelta(days=1)
        )
        Coupon.objects.create(
            code='OLD', discount=10, max_discount=Decimal('20'),
            start_date=self.now - timedelta(days=10), end_date=self.now - timedelta(days=1)
        )
        Coupon.objects.create(
            code='OFF', discount=10, max_discount=Decimal('20'), is_active=False,
            start_date=self.now - timedelta(days=1), end_date=self.now + timedelta(days=1)
        )

        self.assertEqual(Coupon.objects.find_valid_by_code('spring', self.now).code, 'SPRING')
        self.assertIsNone(Coupon.objects.find_valid_by_code('OLD', self.now))
        self.assertIsNone(Coupon.objects.find_valid_by_code('OFF', self.now))
        self.assertIsNone(Coupon.objects.find_valid_by_code('MISSING', self.now))

    def test_is_valid_window(self):
        coupon = Coupon(
            code='LATER', discount=10, max_discount=Decimal('20'),
            start_date=self.now + timedelta(days=1), end_date=self.now + timedelta(days=2)
        )
        self.assertFalse(coupon.is_valid(self.now))
        self.assertTrue(coupon.is_valid(self.now + timedelta(days=1, hours=1)))


class OrderTestMixin:

    def create_fixtures(self):
        self.customer = User.objects.create_user(
            username='customer', email='customer@example.com', password='secret'
        )
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='secret', is_staff=True
        )
        self.keyboard = Product.objects.create(
            name='Mechanical Keyboard',
            price=Decimal('20.00'),
            stock=10,
            images=[{'public_id': 'kb', 'url': 'https://cdn.example.com/kb.jpg'}]
        )
        self.mouse = Product.objects.create(name='Gaming Mouse', price=Decimal('5.00'), stock=10)
        self.cable = Product.objects.create(name='USB Cable', price=Decimal('10.00'), stock=1)

    def place_order(self, items, coupon_code=None, user=None):
        return create_order(
            user or self.customer,
            items,
            SHIPPING_INFO,
            'card',
            coupon_code=coupon_code,
        )


class OrderCreationTestCase(OrderTestMixin, TestCase):
    """Test cases for order creation."""

    def setUp(self):
        self.create_fixtures()

    def test_order_priced_from_catalog(self):
        order = self.place_order([
            {'product_id': self.keyboard.id, 'quantity': 2},
            {'product_id': self.mouse.id, 'quantity': 3},
        ])

        self.assertEqual(order.items_price, Decimal('55.00'))
        self.assertEqual(order.tax_price, Decimal('5.50'))
        self.assertEqual(order.shipping_price, Decimal('10.00'))
        self.assertEqual(order.total_price, Decimal('70.50'))
        self.assertEqual(order.status, Order.Status.PROCESSING)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.items.count(), 2)

    def test_round_trip(self):
        order = self.place_order([{'product_id': self.cable.id, 'quantity': 1}])

        order = Order.objects.get(pk=order.pk)
        self.assertEqual(order.items_price, Decimal('10.00'))
        self.assertEqual(order.tax_price, Decimal('1.00'))
        self.assertEqual(order.shipping_price, Decimal('10.00'))
        self.assertEqual(order.total_price, Decimal('21.00'))
        self.assertEqual(order.discount_amount, Decimal('0.00'))
        self.assertEqual(order.status, 'Processing')
        self.assertEqual(order.shipping_info, SHIPPING_INFO)

    def test_stock_decremented_through_ledger(self):
        order = self.place_order([
            {'product_id': self.keyboard.id, 'quantity': 2},
            {'product_id': self.cable.id, 'quantity': 1},
        ])

        self.keyboard.refresh_from_db()
        self.cable.refresh_from_db()
        self.assertEqual(self.keyboard.stock, 8)
        self.assertEqual(self.cable.stock, 0)

        latest = ledger.query(self.keyboard.id).history[-1]
        self.assertEqual(latest.change, -2)
        self.assertEqual(latest.reason, f"Order #{order.id}")
        self.assertEqual(latest.user, self.customer)

    def test_items_are_snapshotted(self):
        order = self.place_order([{'product_id': self.keyboard.id, 'quantity': 1}])

        Product.objects.filter(pk=self.keyboard.pk).update(
            name='Renamed Keyboard', price=Decimal('99.00')
        )

        item = OrderItem.objects.get(order=order)
        self.assertEqual(item.name, 'Mechanical Keyboard')
        self.assertEqual(item.unit_price, Decimal('20.00'))
        self.assertEqual(item.image, 'https://cdn.example.com/kb.jpg')
        self.assertEqual(item.product_id, self.keyboard.id)

    def test_snapshot_survives_product_deletion(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])

        self.mouse.delete()

        item = OrderItem.objects.get(order=order)
        self.assertIsNone(item.product_id)
        self.assertEqual(item.name, 'Gaming Mouse')

    def test_empty_order_rejected(self):
        with self.assertRaises(EmptyOrder):
            self.place_order([])
        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_product_rejected(self):
        with self.assertRaises(NotFound):
            self.place_order([
                {'product_id': self.keyboard.id, 'quantity': 1},
                {'product_id': 999999, 'quantity': 1},
            ])

        self.keyboard.refresh_from_db()
        self.assertEqual(self.keyboard.stock, 10)
        self.assertEqual(Order.objects.count(), 0)

    def test_insufficient_stock_rejects_whole_order(self):
        """
        Given: USB Cable has only 1 unit
        When: Ordering 5 keyboards and 2 cables
        Then: Nothing is created and no stock moves
        """
        with self.assertRaises(InsufficientStock) as context:
            self.place_order([
                {'product_id': self.keyboard.id, 'quantity': 5},
                {'product_id': self.cable.id, 'quantity': 2},
            ])

        error = context.exception
        self.assertEqual(error.product_name, 'USB Cable')
        self.assertEqual(error.requested, 2)
        self.assertEqual(error.available, 1)

        self.keyboard.refresh_from_db()
        self.assertEqual(self.keyboard.stock, 10)
        self.assertEqual(len(ledger.query(self.keyboard.id).history), 1)
        self.assertEqual(Order.objects.count(), 0)

    def test_order_with_exact_stock(self):
        self.place_order([{'product_id': self.cable.id, 'quantity': 1}])

        self.cable.refresh_from_db()
        self.assertEqual(self.cable.stock, 0)

    def test_repeated_product_lines_are_added_up(self):
        with self.assertRaises(InsufficientStock):
            self.place_order([
                {'product_id': self.mouse.id, 'quantity': 6},
                {'product_id': self.mouse.id, 'quantity': 6},
            ])
        self.mouse.refresh_from_db()
        self.assertEqual(self.mouse.stock, 10)

    def test_stale_stock_read_cannot_oversell(self):
        """
        Given: Validation saw enough stock but another buyer took it since
        Then: The ledger's locked re-check rejects the order and nothing is kept
        """
        Product.objects.filter(pk=self.cable.pk).update(stock=5)
        stale = Product.objects.in_bulk([self.cable.id])

        with patch('orders.services.validate_stock', return_value=stale):
            with self.assertRaises(InsufficientStock):
                self.place_order([{'product_id': self.cable.id, 'quantity': 3}])

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(ledger.query(self.cable.id).quantity, 1)

    def test_valid_coupon_applied(self):
        coupon = Coupon.objects.create(
            code='save10', discount=10, min_purchase=Decimal('50'),
            max_discount=Decimal('100'), end_date=timezone.now() + timedelta(days=1)
        )

        order = self.place_order(
            [{'product_id': self.keyboard.id, 'quantity': 3}],
            coupon_code='Save10'
        )

        self.assertEqual(order.discount_amount, Decimal('6.00'))
        self.assertEqual(order.total_price, Decimal('70.00'))
        self.assertEqual(order.coupon, coupon)

    def test_unknown_coupon_ignored(self):
        order = self.place_order(
            [{'product_id': self.keyboard.id, 'quantity': 1}],
            coupon_code='NOPE'
        )

        self.assertEqual(order.discount_amount, Decimal('0.00'))
        self.assertIsNone(order.coupon)

    def test_expired_coupon_ignored(self):
        Coupon.objects.create(
            code='GONE', discount=50, max_discount=Decimal('100'),
            start_date=timezone.now() - timedelta(days=5),
            end_date=timezone.now() - timedelta(days=1)
        )

        order = self.place_order(
            [{'product_id': self.keyboard.id, 'quantity': 1}],
            coupon_code='GONE'
        )

        self.assertEqual(order.discount_amount, Decimal('0.00'))


class OrderNotificationTestCase(OrderTestMixin, TestCase):
    """Test cases for best-effort notifications."""

    def setUp(self):
        self.create_fixtures()

    def test_confirmation_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, 'Order Confirmation')
        self.assertEqual(mail.outbox[0].to, ['customer@example.com'])
        self.assertIn(f"Order ID: {order.id}", mail.outbox[0].body)

    def test_mail_failure_does_not_fail_order(self):
        with patch('orders.notifications.send_mail', side_effect=SMTPException('relay down')):
            with self.assertLogs('orders.notifications', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])

        self.assertTrue(Order.objects.filter(pk=order.pk).exists())
        self.assertEqual(len(mail.outbox), 0)

    def test_broker_failure_does_not_fail_order(self):
        with patch('celery.app.task.Task.apply_async', side_effect=OSError('broker down')):
            with self.assertLogs('orders.notifications', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])

        self.assertTrue(Order.objects.filter(pk=order.pk).exists())

    def test_confirmation_task_for_missing_order(self):
        result = send_order_confirmation(999999)
        self.assertEqual(result['status'], 'error')

    def test_status_update_notification(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])

        with self.captureOnCommitCallbacks(execute=True):
            update_status(order.id, Order.Status.SHIPPED, user=self.admin)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, 'Order Status Update')
        self.assertIn('Shipped', mail.outbox[0].body)


class OrderLifecycleTestCase(OrderTestMixin, TestCase):
    """Test cases for status transitions and deletion."""

    def setUp(self):
        self.create_fixtures()
        self.order = self.place_order([{'product_id': self.keyboard.id, 'quantity': 2}])

    def test_ship_then_deliver(self):
        order = update_status(self.order.id, Order.Status.SHIPPED, user=self.admin)
        self.assertEqual(order.status, Order.Status.SHIPPED)
        self.assertIsNotNone(order.shipped_at)
        self.assertIsNone(order.delivered_at)

        order = update_status(self.order.id, Order.Status.DELIVERED, user=self.admin)
        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertIsNotNone(order.delivered_at)

    def test_delivered_order_is_final(self):
        update_status(self.order.id, Order.Status.DELIVERED, user=self.admin)

        for target in Order.Status.values:
            with self.assertRaises(AlreadyFinalized):
                update_status(self.order.id, target, user=self.admin)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

    def test_backward_transition_rejected(self):
        update_status(self.order.id, Order.Status.SHIPPED, user=self.admin)

        with self.assertRaises(InvalidStatusTransition):
            update_status(self.order.id, Order.Status.PROCESSING, user=self.admin)

    def test_unknown_status_rejected(self):
        with self.assertRaises(InvalidStatusTransition) as context:
            update_status(self.order.id, 'Lost', user=self.admin)
        self.assertIn('Unknown order status', context.exception.message)

    def test_backward_transition_message(self):
        update_status(self.order.id, Order.Status.SHIPPED, user=self.admin)

        with self.assertRaises(InvalidStatusTransition) as context:
            update_status(self.order.id, Order.Status.PROCESSING, user=self.admin)
        self.assertIn('from Shipped back to Processing', context.exception.message)

    def test_same_status_update_is_silent(self):
        """
        Given: An order already Shipped
        When: It is set to Shipped again
        Then: shipped_at is unchanged and no status email goes out
        """
        shipped = update_status(self.order.id, Order.Status.SHIPPED, user=self.admin)

        with self.captureOnCommitCallbacks(execute=True):
            again = update_status(self.order.id, Order.Status.SHIPPED, user=self.admin)

        self.assertEqual(again.shipped_at, shipped.shipped_at)
        self.assertEqual(len(mail.outbox), 0)

    def test_update_missing_order(self):
        with self.assertRaises(NotFound):
            update_status(999999, Order.Status.SHIPPED)

    def test_delete_order_keeps_stock_taken(self):
        delete_order(self.order.id)

        self.assertFalse(Order.objects.filter(pk=self.order.id).exists())
        self.keyboard.refresh_from_db()
        self.assertEqual(self.keyboard.stock, 8)

    def test_delete_missing_order(self):
        with self.assertRaises(NotFound):
            delete_order(999999)


class PaymentTestCase(OrderTestMixin, TestCase):
    """Test cases for gateway signature verification."""

    SECRET = 'gateway-secret'

    def setUp(self):
        self.create_fixtures()
        self.order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        self.signature = payments.compute_signature('gw_order_1', 'gw_pay_1', self.SECRET)

    def test_verify_signature(self):
        payments.verify_signature('gw_order_1', 'gw_pay_1', self.signature, self.SECRET)

        with self.assertRaises(PaymentVerificationFailed):
            payments.verify_signature('gw_order_1', 'gw_pay_2', self.signature, self.SECRET)
        with self.assertRaises(PaymentVerificationFailed):
            payments.verify_signature('gw_order_1', 'gw_pay_1', self.signature, 'other-secret')
        with self.assertRaises(PaymentVerificationFailed):
            payments.verify_signature('gw_order_1', 'gw_pay_1', '', self.SECRET)

    def test_confirm_payment(self):
        order = payments.confirm_payment(
            self.order.id, self.customer, 'gw_order_1', 'gw_pay_1', self.signature,
            secret=self.SECRET
        )

        order.refresh_from_db()
        self.assertTrue(order.is_paid)
        self.assertEqual(order.payment_id, 'gw_pay_1')
        self.assertEqual(order.payment_gateway_order_id, 'gw_order_1')
        self.assertIsNotNone(order.paid_at)

    def test_bad_signature_leaves_order_unpaid(self):
        with self.assertRaises(PaymentVerificationFailed):
            payments.confirm_payment(
                self.order.id, self.customer, 'gw_order_1', 'gw_pay_1', 'forged',
                secret=self.SECRET
            )

        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_only_owner_can_pay(self):
        with self.assertRaises(Unauthorized):
            payments.confirm_payment(
                self.order.id, self.admin, 'gw_order_1', 'gw_pay_1', self.signature,
                secret=self.SECRET
            )

    def test_cannot_pay_twice(self):
        payments.confirm_payment(
            self.order.id, self.customer, 'gw_order_1', 'gw_pay_1', self.signature,
            secret=self.SECRET
        )
        with self.assertRaises(AlreadyPaid):
            payments.confirm_payment(
                self.order.id, self.customer, 'gw_order_1', 'gw_pay_1', self.signature,
                secret=self.SECRET
            )

    def test_missing_order(self):
        with self.assertRaises(NotFound):
            payments.confirm_payment(
                999999, self.customer, 'gw_order_1', 'gw_pay_1', self.signature,
                secret=self.SECRET
            )


class ReportsTestCase(OrderTestMixin, TestCase):

    def setUp(self):
        self.create_fixtures()

    def test_dashboard_stats(self):
        paid = self.place_order([{'product_id': self.keyboard.id, 'quantity': 1}])
        self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        Order.objects.filter(pk=paid.pk).update(payment_status=Order.PaymentStatus.PAID)
        update_status(paid.id, Order.Status.DELIVERED)

        stats = reports.dashboard_stats()

        self.assertEqual(stats['total_orders'], 2)
        self.assertEqual(stats['processing_orders'], 1)
        self.assertEqual(stats['delivered_orders'], 1)
        self.assertEqual(stats['total_revenue'], paid.total_price)
        self.assertEqual(stats['total_products'], 3)
        self.assertEqual(stats['total_users'], 2)
        # Keyboard and mouse at 9, cable at 1; all under the default threshold
        self.assertEqual(stats['low_stock_items'], 3)

    def test_monthly_revenue_counts_paid_orders_only(self):
        paid = self.place_order([{'product_id': self.keyboard.id, 'quantity': 1}])
        self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        Order.objects.filter(pk=paid.pk).update(payment_status=Order.PaymentStatus.PAID)

        rows = reports.monthly_revenue()

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['count'], 1)
        self.assertEqual(rows[0]['total'], paid.total_price)
        self.assertEqual(rows[0]['month'], timezone.now().strftime('%Y-%m'))


class OrderAPITestCase(OrderTestMixin, APITestCase):
    """Test cases for the order endpoints."""

    def setUp(self):
        self.create_fixtures()
        self.client.force_authenticate(self.customer)

    def post_order(self, items, **extra):
        payload = {'items': items, 'shipping_info': SHIPPING_INFO, 'payment_method': 'card'}
        payload.update(extra)
        return self.client.post(reverse('orders:order-list'), payload, format='json')

    def test_create_order(self):
        response = self.post_order([
            {'product_id': self.keyboard.id, 'quantity': 2},
            {'product_id': self.mouse.id, 'quantity': 3},
        ])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_price'], '70.50')
        self.assertEqual(response.data['status'], 'Processing')
        self.assertEqual(response.data['payment_info']['status'], 'pending')
        self.assertEqual(len(response.data['items']), 2)

    def test_client_prices_are_ignored(self):
        response = self.post_order(
            [{'product_id': self.cable.id, 'quantity': 1, 'price': '0.01'}],
            total_price='0.01'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_price'], '21.00')

    def test_create_order_insufficient_stock(self):
        response = self.post_order([{'product_id': self.cable.id, 'quantity': 2}])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'INSUFFICIENT_STOCK')
        self.assertIn('USB Cable', response.data['detail'])

    def test_create_order_empty(self):
        response = self.post_order([])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'EMPTY_ORDER')

    def test_create_order_unknown_product(self):
        response = self.post_order([{'product_id': 999999, 'quantity': 1}])

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'NOT_FOUND')

    def test_create_order_duplicate_products(self):
        response = self.post_order([
            {'product_id': self.mouse.id, 'quantity': 1},
            {'product_id': self.mouse.id, 'quantity': 1},
        ])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data)

    def test_create_order_requires_login(self):
        self.client.force_authenticate(None)
        response = self.post_order([{'product_id': self.mouse.id, 'quantity': 1}])

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_my_orders(self):
        self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        self.place_order([{'product_id': self.mouse.id, 'quantity': 1}], user=self.admin)

        response = self.client.get(reverse('orders:order-mine'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_other_users_order_is_hidden(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}], user=self.admin)

        response = self.client.get(reverse('orders:order-detail', args=[order.id]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'UNAUTHORIZED')

    def test_admin_lists_all_orders(self):
        self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        self.client.force_authenticate(self.admin)

        response = self.client.get(reverse('orders:order-list'), {'status': 'processing'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_status_update_by_admin(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        url = reverse('orders:order-status', args=[order.id])

        response = self.client.put(url, {'status': 'Shipped'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.put(url, {'status': 'Delivered'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'Delivered')

        response = self.client.put(url, {'status': 'Shipped'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'ALREADY_FINALIZED')

    def test_delete_by_admin_only(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        url = reverse('orders:order-detail', args=[order.id])

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_verify_payment(self):
        order = self.place_order([{'product_id': self.mouse.id, 'quantity': 1}])
        url = reverse('orders:order-payment-verify', args=[order.id])
        signature = payments.compute_signature('gw_o', 'gw_p', 'api-secret')

        with self.settings(PAYMENT_GATEWAY_SECRET='api-secret'):
            bad = self.client.post(url, {
                'gateway_order_id': 'gw_o', 'gateway_payment_id': 'gw_p', 'signature': 'nope'
            }, format='json')
            good = self.client.post(url, {
                'gateway_order_id': 'gw_o', 'gateway_payment_id': 'gw_p', 'signature': signature
            }, format='json')

        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(bad.data['error'], 'PAYMENT_VERIFICATION_FAILED')
        self.assertEqual(good.status_code, status.HTTP_200_OK)
        self.assertEqual(good.data['status'], 'paid')

        details = self.client.get(reverse('orders:order-payment', args=[order.id]))
        self.assertEqual(details.data['payment_id'], 'gw_p')

    def test_dashboard_requires_admin(self):
        self.assertEqual(
            self.client.get(reverse('orders:order-stats')).status_code,
            status.HTTP_403_FORBIDDEN
        )
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse('orders:order-stats'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_revenue'], '0.00')

    def test_create_coupon(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('orders:coupon-list'), {
            'code': 'summer',
            'discount': 20,
            'min_purchase': '50.00',
            'max_discount': '25.00',
            'start_date': timezone.now().isoformat(),
            'end_date': (timezone.now() + timedelta(days=30)).isoformat(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'SUMMER')

    def test_coupon_discount_out_of_range(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('orders:coupon-list'), {
            'code': 'TOOBIG',
            'discount': 150,
            'max_discount': '25.00',
            'end_date': (timezone.now() + timedelta(days=30)).isoformat(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_coupon_code_unique_regardless_of_case(self):
        """
        Given: Coupon SAVE10 exists
        When: An admin creates "save10"
        Then: The request is rejected with 400 and no second coupon is stored
        """
        Coupon.objects.create(
            code='SAVE10', discount=10, max_discount=Decimal('20'),
            end_date=timezone.now() + timedelta(days=1)
        )
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse('orders:coupon-list'), {
            'code': 'save10',
            'discount': 15,
            'max_discount': '25.00',
            'end_date': (timezone.now() + timedelta(days=30)).isoformat(),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)
        self.assertEqual(Coupon.objects.count(), 1)


class ConcurrentOrderTestCase(TransactionTestCase):
    """
    Two buyers racing for the last unit.
    Needs real row locks, so it only runs on back ends with select_for_update
    (set POSTGRES_DB and friends, see the module docstring).
    """

    @skipUnlessDBFeature('has_select_for_update')
    def test_last_unit_sold_exactly_once(self):
        """
        Given: 1 unit in stock
        When: Two concurrent orders for 1 unit each
        Then: One succeeds, the other fails with InsufficientStock,
              and stock ends at 0
        """
        buyers = [
            User.objects.create_user(username=f'buyer{i}', email=f'buyer{i}@example.com')
            for i in range(2)
        ]
        product = Product.objects.create(name='Last Unit', price=Decimal('50.00'), stock=1)
        barrier = threading.Barrier(2)
        outcomes = []

        def place_order(user):
            try:
                barrier.wait()
                create_order(
                    user,
                    [{'product_id': product.id, 'quantity': 1}],
                    SHIPPING_INFO,
                    'card'
                )
                outcomes.append('created')
            except InsufficientStock:
                outcomes.append('insufficient')
            finally:
                connection.close()

        threads = [threading.Thread(target=place_order, args=(user,)) for user in buyers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ['created', 'insufficient'])
        product.refresh_from_db()
        self.assertEqual(product.stock, 0)
        self.assertEqual(ledger.query(product.id).quantity, 0)
        self.assertEqual(Order.objects.count(), 1)

    @skipUnlessDBFeature('has_select_for_update')
    def test_order_and_adjustment_on_same_product_both_commit(self):
        """
        Given: An order and an admin adjustment for the same product
        When: Both run at the same time
        Then: Both commit and stock still matches its history
        """
        buyer = User.objects.create_user(username='buyer', email='buyer@example.com')
        product = Product.objects.create(name='Contested', price=Decimal('5.00'), stock=10)
        barrier = threading.Barrier(2)
        errors = []

        def run(action):
            try:
                barrier.wait()
                action()
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        actions = [
            lambda: create_order(
                buyer, [{'product_id': product.id, 'quantity': 2}], SHIPPING_INFO, 'card'
            ),
            lambda: ledger.adjust(product.id, 50, reason='Restock'),
        ]
        threads = [threading.Thread(target=run, args=(action,)) for action in actions]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(Order.objects.count(), 1)
        self.assertFalse(ledger.reconcile(product.id).corrected)

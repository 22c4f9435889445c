import threading
from collections import namedtuple
from decimal import Decimal
from unittest import mock

from django.db import connection
from django.test import TestCase, TransactionTestCase, skipUnlessDBFeature
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Branch, Item
from erp.errors import (
    AlreadyBilled, BillNotFound, IllegalTransition, NoItems, NotFound,
    OrderClosed, StorageError, ValidationError
)
from erp.store import Store
from kitchen.models import KitchenTicket
from orders.models import Order, OrderItem
from orders.repository import OrderRepository
from orders.services import OrderService

from .calculations import BillTotals, compute_totals, fits
from .models import Bill
from .services import BillingEngine

Line = namedtuple('Line', ['quantity', 'price', 'tax_rate'])


class BillCalculationTests(TestCase):
    """Test bill arithmetic"""

    def test_two_line_example(self):
        """Test 2 x 100 @ 5% and 1 x 50 @ 12%"""
        totals = compute_totals([
            Line(2, Decimal('100'), Decimal('5')),
            Line(1, Decimal('50'), Decimal('12')),
        ])

        # tax = 2*100*0.05 + 1*50*0.12 = 10 + 6
        self.assertEqual(totals, BillTotals(Decimal('250.00'), Decimal('16.00'), Decimal('266.00')))

    def test_tax_summed_before_rounding(self):
        """Test per-line tax is summed exactly and rounded once"""
        # Each line carries 0.005 of tax; rounding per line would give 0.03
        lines = [Line(1, Decimal('0.10'), Decimal('5'))] * 3

        totals = compute_totals(lines)

        self.assertEqual(totals.subtotal, Decimal('0.30'))
        self.assertEqual(totals.tax, Decimal('0.02'))
        self.assertEqual(totals.net, Decimal('0.32'))

    def test_mixed_rates_half_up(self):
        """Test the final rounding is half-up to the paisa"""
        totals = compute_totals([
            Line(3, Decimal('33.33'), Decimal('18')),   # 99.99 -> 17.9982
            Line(1, Decimal('12.50'), Decimal('12.5')),  # 12.50 -> 1.5625
        ])

        self.assertEqual(totals.subtotal, Decimal('112.49'))
        self.assertEqual(totals.tax, Decimal('19.56'))
        self.assertEqual(totals.net, totals.subtotal + totals.tax)

    def test_zero_rate(self):
        """Test zero-rated items carry no tax"""
        totals = compute_totals([Line(4, Decimal('20.00'), Decimal('0'))])

        self.assertEqual(totals, BillTotals(Decimal('80.00'), Decimal('0.00'), Decimal('80.00')))


class BillingEngineTests(TestCase):
    """Test generating and viewing bills"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('100.00'),
            tax_rate=Decimal('5.00'),
        )
        self.coffee = Item.objects.create(
            branch=self.branch,
            name="Filter Coffee",
            price=Decimal('50.00'),
            tax_rate=Decimal('12.00'),
        )
        self.store = Store()
        self.orders = OrderService(self.store)
        self.billing = BillingEngine(self.store)

        self.order_id = self.orders.create_order(self.branch.id, Order.DINE_IN, table='T4')
        self.orders.add_item(self.order_id, self.dosa.id, 2)
        self.orders.add_item(self.order_id, self.coffee.id, 1)
        self.orders.update_status(self.order_id, Order.IN_PROGRESS)

    def assert_billing_invariant(self):
        """BILLED <=> exactly one bill, for every order"""
        for order in Order.objects.all():
            bills = Bill.objects.filter(order=order).count()
            if order.status == Order.BILLED:
                self.assertEqual(bills, 1, f"order {order.id} is BILLED with {bills} bills")
            else:
                self.assertEqual(bills, 0, f"order {order.id} is {order.status} with {bills} bills")

    def test_generate_bill(self):
        """Test the bill totals, the stored bill and the order flip"""
        totals = self.billing.generate_bill(self.order_id, 'CARD')

        self.assertEqual(totals.subtotal, Decimal('250.00'))
        self.assertEqual(totals.tax, Decimal('16.00'))
        self.assertEqual(totals.net, Decimal('266.00'))

        bill = Bill.objects.get(order_id=self.order_id)
        self.assertEqual(bill.branch, self.branch)
        self.assertEqual(bill.payment_method, 'CARD')
        self.assertEqual((bill.subtotal, bill.tax, bill.net), tuple(totals))

        order = Order.objects.get(pk=self.order_id)
        self.assertEqual(order.status, Order.BILLED)
        self.assertEqual((order.subtotal, order.tax, order.net), tuple(totals))
        self.assert_billing_invariant()

    def test_stored_bill_matches_items(self):
        """Test re-deriving from stored order items reproduces the bill"""
        self.billing.generate_bill(self.order_id, 'CASH')

        bill = Bill.objects.get(order_id=self.order_id)
        rederived = compute_totals(OrderItem.objects.filter(order_id=self.order_id))
        self.assertEqual(rederived, BillTotals(bill.subtotal, bill.tax, bill.net))

    def test_bill_uses_frozen_prices(self):
        """Test catalog price changes after attaching do not reach the bill"""
        self.dosa.price = Decimal('999.00')
        self.dosa.tax_rate = Decimal('28.00')
        self.dosa.save()

        totals = self.billing.generate_bill(self.order_id, 'CASH')

        self.assertEqual(totals.net, Decimal('266.00'))

    def test_bill_pending_order(self):
        """Test a PENDING order can be billed directly"""
        order_id = self.orders.create_order(self.branch.id, Order.COUNTER)
        self.orders.add_item(order_id, self.coffee.id, 2)

        totals = self.billing.generate_bill(order_id, 'UPI')

        self.assertEqual(totals, BillTotals(Decimal('100.00'), Decimal('12.00'), Decimal('112.00')))
        self.assertEqual(Order.objects.get(pk=order_id).status, Order.BILLED)

    def test_bill_with_pending_tickets(self):
        """Test billing does not wait for the kitchen"""
        self.assertTrue(KitchenTicket.objects.filter(order_id=self.order_id, status=KitchenTicket.PENDING).exists())

        self.billing.generate_bill(self.order_id, 'CASH')

        self.assertEqual(Order.objects.get(pk=self.order_id).status, Order.BILLED)

    def test_generate_bill_twice(self):
        """Test the second bill attempt fails AlreadyBilled"""
        self.billing.generate_bill(self.order_id, 'CARD')

        with self.assertRaises(AlreadyBilled):
            self.billing.generate_bill(self.order_id, 'CASH')

        self.assertEqual(Bill.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(Bill.objects.get(order_id=self.order_id).payment_method, 'CARD')
        self.assert_billing_invariant()

    def test_no_items(self):
        """Test an empty order cannot be billed"""
        order_id = self.orders.create_order(self.branch.id, Order.COUNTER)

        with self.assertRaises(NoItems):
            self.billing.generate_bill(order_id, 'CASH')

        self.assertEqual(Order.objects.get(pk=order_id).status, Order.PENDING)
        self.assert_billing_invariant()

    def test_unknown_order(self):
        """Test billing a missing order is NotFound"""
        with self.assertRaises(NotFound):
            self.billing.generate_bill(9999, 'CASH')

    def test_cancelled_order(self):
        """Test a cancelled order cannot be billed"""
        self.orders.update_status(self.order_id, Order.CANCELLED)

        with self.assertRaises(OrderClosed):
            self.billing.generate_bill(self.order_id, 'CASH')

        self.assert_billing_invariant()

    def test_invalid_payment_method(self):
        """Test payment method is validated before anything is written"""
        with self.assertRaises(ValidationError):
            self.billing.generate_bill(self.order_id, '')

        self.assertEqual(Order.objects.get(pk=self.order_id).status, Order.IN_PROGRESS)
        self.assertFalse(Bill.objects.exists())

    def test_add_item_after_billing(self):
        """Test a billed order accepts no more items"""
        self.billing.generate_bill(self.order_id, 'CARD')

        with self.assertRaises(OrderClosed):
            self.orders.add_item(self.order_id, self.dosa.id, 1)

        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 2)

    def test_status_update_after_billing(self):
        """Test a billed order cannot be cancelled"""
        self.billing.generate_bill(self.order_id, 'CARD')

        with self.assertRaises(IllegalTransition):
            self.orders.update_status(self.order_id, Order.CANCELLED)

        self.assert_billing_invariant()

    def test_view_bill(self):
        """Test viewing returns the stored snapshot"""
        self.billing.generate_bill(self.order_id, 'CARD')

        bill = self.billing.view_bill(self.order_id)

        self.assertEqual(bill.order_id, self.order_id)
        self.assertEqual(bill.net, Decimal('266.00'))
        self.assertEqual(bill.payment_method, 'CARD')

    def test_view_bill_before_billing(self):
        """Test viewing a bill that does not exist yet"""
        with self.assertRaises(BillNotFound):
            self.billing.view_bill(self.order_id)

    def test_bills_are_append_only(self):
        """Test a stored bill cannot be edited or deleted"""
        self.billing.generate_bill(self.order_id, 'CARD')
        bill = Bill.objects.get(order_id=self.order_id)

        bill.net = Decimal('1.00')
        with self.assertRaises(IllegalTransition):
            bill.save()
        with self.assertRaises(IllegalTransition):
            bill.delete()

    def test_lost_race_on_insert(self):
        """Test the unique order reference stops a second bill and rolls back the status flip"""
        order = Order.objects.get(pk=self.order_id)
        # Another worker's bill row, not yet visible to our pre-check
        Bill.objects.create(
            order=order, branch=self.branch,
            subtotal=Decimal('250.00'), tax=Decimal('16.00'), net=Decimal('266.00'),
            payment_method='CASH',
        )

        with mock.patch.object(OrderRepository, 'find_transaction', return_value=None):
            with self.assertRaises(AlreadyBilled):
                self.billing.generate_bill(self.order_id, 'CARD')

        self.assertEqual(Bill.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(Bill.objects.get(order_id=self.order_id).payment_method, 'CASH')
        # The conditional status update was rolled back with the failed insert
        self.assertEqual(Order.objects.get(pk=self.order_id).status, Order.IN_PROGRESS)

    def test_lost_race_on_status_update(self):
        """Test the conditional status update lets only one biller through"""
        stale = Order.objects.get(pk=self.order_id)
        self.billing.generate_bill(self.order_id, 'CASH')

        # Replay a caller that read the order before the winner committed
        with mock.patch.object(OrderRepository, 'lock_order', return_value=stale), \
                mock.patch.object(OrderRepository, 'find_transaction', return_value=None):
            with self.assertRaises(AlreadyBilled):
                self.billing.generate_bill(self.order_id, 'CARD')

        self.assertEqual(Bill.objects.filter(order_id=self.order_id).count(), 1)
        self.assert_billing_invariant()

    def test_compare_and_swap_status(self):
        """Test the conditional update succeeds for exactly one caller"""
        repository = OrderRepository(self.store)

        first = repository.compare_and_swap_status(self.order_id, Order.OPEN_STATUSES, Order.CANCELLED)
        second = repository.compare_and_swap_status(self.order_id, Order.OPEN_STATUSES, Order.CANCELLED)

        self.assertTrue(first)
        self.assertFalse(second)

    def test_failed_bill_write_leaves_order_open(self):
        """Test a storage failure on the bill insert applies neither write"""
        with mock.patch.object(OrderRepository, 'insert_transaction', side_effect=StorageError()):
            with self.assertRaises(StorageError):
                self.billing.generate_bill(self.order_id, 'CARD')

        order = Order.objects.get(pk=self.order_id)
        self.assertEqual(order.status, Order.IN_PROGRESS)
        self.assertEqual(order.net, Decimal('0'))
        self.assert_billing_invariant()

        # Retrying the whole operation succeeds
        self.billing.generate_bill(self.order_id, 'CARD')
        self.assert_billing_invariant()

    def test_totals_out_of_range(self):
        """Test totals too large to store are rejected and the order stays open and readable"""
        banquet = Item.objects.create(
            branch=self.branch,
            name="Wedding Banquet",
            price=Decimal('99999999.99'),
            tax_rate=Decimal('18.00'),
        )
        order = Order.objects.get(pk=self.order_id)
        # Rows written before the attach bound existed
        for _ in range(2):
            OrderItem.objects.create(
                order=order, item=banquet, quantity=100,
                price=banquet.price, tax_rate=banquet.tax_rate,
            )

        with self.assertRaises(ValidationError):
            self.billing.generate_bill(self.order_id, 'CARD')

        order = self.orders.get_order(self.order_id)
        self.assertEqual(order.status, Order.IN_PROGRESS)
        self.assertEqual(order.net, Decimal('0'))
        self.assertFalse(Bill.objects.exists())
        with self.assertRaises(BillNotFound):
            self.billing.view_bill(self.order_id)

    def test_totals_fit(self):
        """Test the largest storable totals are accepted"""
        self.assertTrue(fits(BillTotals(Decimal('9000000000.00'), Decimal('999999999.99'),
                                        Decimal('9999999999.99'))))
        self.assertFalse(fits(BillTotals(Decimal('9999999999.99'), Decimal('0.01'),
                                         Decimal('10000000000.00'))))


class BillingAPITests(APITestCase):
    """Test billing API endpoints"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('100.00'),
            tax_rate=Decimal('5.00'),
        )
        self.coffee = Item.objects.create(
            branch=self.branch,
            name="Filter Coffee",
            price=Decimal('50.00'),
            tax_rate=Decimal('12.00'),
        )
        # Add API key to all requests
        self.client.defaults['HTTP_X_API_KEY'] = 'demo'

    def test_complete_billing_flow(self):
        """Test complete flow: create order -> attach items -> bill -> view bill"""

        # Step 1: Create order
        url = reverse('create_order')
        data = {'branch_id': self.branch.id, 'order_type': 'DINE_IN', 'table': 'T4'}
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order_id = response.data['id']

        # Step 2: Attach items
        url = reverse('add_item', kwargs={'order_id': order_id})
        response = self.client.post(url, {'item_id': self.dosa.id, 'quantity': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(url, {'item_id': self.coffee.id, 'quantity': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        # Step 3: Generate bill
        url = reverse('bill', kwargs={'order_id': order_id})
        response = self.client.post(url, {'payment_method': 'CARD'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data, {
            'order_id': order_id,
            'subtotal': '250.00',
            'tax': '16.00',
            'net': '266.00',
        })

        # Step 4: Second attempt is rejected
        response = self.client.post(url, {'payment_method': 'CASH'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'AlreadyBilled')

        # Step 5: View the stored bill
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['net'], '266.00')
        self.assertEqual(response.data['payment_method'], 'CARD')

        # Step 6: The order is BILLED with the same totals
        response = self.client.get(reverse('get_order', kwargs={'order_id': order_id}))
        self.assertEqual(response.data['status'], 'BILLED')
        self.assertEqual(response.data['net'], '266.00')

    def test_view_bill_not_found(self):
        """Test viewing a bill before billing is 404 BillNotFound"""
        order_id = OrderService(Store()).create_order(self.branch.id, Order.COUNTER)
        url = reverse('bill', kwargs={'order_id': order_id})

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'BillNotFound')

    def test_bill_empty_order(self):
        """Test billing an order without items is 409 NoItems"""
        order_id = OrderService(Store()).create_order(self.branch.id, Order.COUNTER)
        url = reverse('bill', kwargs={'order_id': order_id})

        response = self.client.post(url, {'payment_method': 'CASH'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'NoItems')

    def test_bill_missing_payment_method(self):
        """Test payment method is required"""
        order_id = OrderService(Store()).create_order(self.branch.id, Order.COUNTER)
        url = reverse('bill', kwargs={'order_id': order_id})

        response = self.client.post(url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')

    def test_bill_unknown_order(self):
        """Test billing a missing order is 404"""
        url = reverse('bill', kwargs={'order_id': 9999})

        response = self.client.post(url, {'payment_method': 'CASH'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'NotFound')


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentBillingTests(TransactionTestCase):
    """Test billing and attaching from separate connections (needs row locks, e.g. PostgreSQL)"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('100.00'),
            tax_rate=Decimal('5.00'),
        )
        service = OrderService(Store())
        self.order_id = service.create_order(self.branch.id, Order.DINE_IN)
        service.add_item(self.order_id, self.dosa.id, 1)

    def test_attach_waits_for_billing(self):
        """Test an attach blocked behind the billing lock sees the BILLED order"""
        lock_held = threading.Event()
        release = threading.Event()
        errors = []
        insert_transaction = OrderRepository.insert_transaction

        def slow_insert(repository, *args, **kwargs):
            lock_held.set()
            release.wait(5)
            return insert_transaction(repository, *args, **kwargs)

        def bill():
            try:
                BillingEngine(Store()).generate_bill(self.order_id, 'CASH')
            finally:
                connection.close()

        def attach():
            try:
                OrderService(Store()).add_item(self.order_id, self.dosa.id, 1)
            except OrderClosed as exc:
                errors.append(exc)
            finally:
                connection.close()

        with mock.patch.object(OrderRepository, 'insert_transaction', autospec=True, side_effect=slow_insert):
            biller = threading.Thread(target=bill)
            biller.start()
            self.assertTrue(lock_held.wait(5))

            attacher = threading.Thread(target=attach)
            attacher.start()
            attacher.join(0.5)
            # Still waiting on the order's row lock
            blocked = attacher.is_alive()

            release.set()
            biller.join(5)
            attacher.join(5)

        self.assertTrue(blocked)
        self.assertEqual(len(errors), 1)
        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(Order.objects.get(pk=self.order_id).status, Order.BILLED)
        self.assertEqual(Bill.objects.filter(order_id=self.order_id).count(), 1)

from decimal import Decimal
from unittest import mock

from django.contrib import admin
from django.db.models.query import QuerySet
from django.test import RequestFactory, TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from billing.models import Bill
from billing.serializers import GenerateBillSerializer
from billing.services import BillingEngine
from catalog.models import Branch, Item
from erp.errors import IllegalTransition, NotFound, OrderClosed, ValidationError
from erp.store import Store
from kitchen.models import KitchenTicket

from . import services
from .admin import OrderAdmin
from .models import Order, OrderItem
from .serializers import MAX_QUANTITY, AddItemSerializer, CreateOrderSerializer, OrderSerializer
from .services import OrderService
from .validation import validate_id, validate_input


class ValidationTests(TestCase):
    """Test the input validation layer"""

    def test_ids(self):
        """Test identifiers must be positive integers"""
        self.assertEqual(validate_id(3, 'order'), 3)
        for bad in [0, -1, 1.5, 'seven', None, True]:
            with self.assertRaises(ValidationError):
                validate_id(bad, 'order')

    def test_quantity(self):
        """Test quantity must be a positive integer no larger than the attach limit"""
        data = validate_input(AddItemSerializer, item_id=1, quantity=3)
        self.assertEqual(data['quantity'], 3)
        self.assertEqual(validate_input(AddItemSerializer, item_id=1, quantity=MAX_QUANTITY)['quantity'],
                         MAX_QUANTITY)
        for bad in [0, -1, 1.5, 'two', None, True, MAX_QUANTITY + 1, 2 ** 31]:
            with self.assertRaises(ValidationError):
                validate_input(AddItemSerializer, item_id=1, quantity=bad)

    def test_error_names_the_field(self):
        """Test the error message says which argument was rejected"""
        with self.assertRaises(ValidationError) as ctx:
            validate_input(AddItemSerializer, item_id=1, quantity=0)

        self.assertTrue(ctx.exception.message.startswith('quantity:'))

    def test_new_order(self):
        """Test order arguments are cleaned"""
        fields = validate_input(CreateOrderSerializer, branch_id=1, order_type='DINE_IN',
                                table='  T4 ', customer_id=7)
        self.assertEqual(dict(fields), {
            'branch_id': 1,
            'order_type': 'DINE_IN',
            'table': 'T4',
            'customer_id': 7,
        })

    def test_new_order_blank_table(self):
        """Test a blank table designator is stored as no table"""
        fields = validate_input(CreateOrderSerializer, branch_id=1, order_type='COUNTER', table='')
        self.assertIsNone(fields['table'])

    def test_new_order_requires_branch_and_type(self):
        """Test branch and type are mandatory"""
        with self.assertRaises(ValidationError):
            validate_input(CreateOrderSerializer, branch_id=None, order_type='DINE_IN')
        with self.assertRaises(ValidationError):
            validate_input(CreateOrderSerializer, branch_id=1, order_type=None)
        with self.assertRaises(ValidationError):
            validate_input(CreateOrderSerializer, branch_id=1, order_type='TAKEAWAY')
        with self.assertRaises(ValidationError):
            validate_input(CreateOrderSerializer, branch_id=1, order_type='DINE_IN', table='T' * 21)

    def test_payment_method(self):
        """Test payment method must be a short non-empty string"""
        data = validate_input(GenerateBillSerializer, payment_method=' UPI ')
        self.assertEqual(data['payment_method'], 'UPI')
        for bad in ['', '   ', None, 'X' * 51]:
            with self.assertRaises(ValidationError):
                validate_input(GenerateBillSerializer, payment_method=bad)


class OrderServiceTestCase(TestCase):

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.other_branch = Branch.objects.create(name="Station Road")
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
        self.service = OrderService(self.store)

    def create_order(self, **kwargs):
        kwargs.setdefault('order_type', Order.DINE_IN)
        return self.service.create_order(self.branch.id, **kwargs)


class CreateOrderTests(OrderServiceTestCase):
    """Test order creation"""

    def test_create_order(self):
        """Test a new order is PENDING with zero totals"""
        order_id = self.create_order(table='T4', customer_id=12)

        order = Order.objects.get(pk=order_id)
        self.assertEqual(order.status, Order.PENDING)
        self.assertEqual(order.branch, self.branch)
        self.assertEqual(order.table, 'T4')
        self.assertEqual(order.customer_id, 12)
        self.assertEqual(order.subtotal, Decimal('0'))
        self.assertEqual(order.net, Decimal('0'))
        self.assertIsNotNone(order.created_at)

    def test_create_order_without_table_or_customer(self):
        """Test table and customer are optional"""
        order_id = self.create_order(order_type=Order.COUNTER)

        order = Order.objects.get(pk=order_id)
        self.assertIsNone(order.table)
        self.assertIsNone(order.customer_id)

    def test_create_order_unknown_branch(self):
        """Test an unknown branch is a validation error"""
        with self.assertRaises(ValidationError):
            self.service.create_order(9999, Order.DINE_IN)

        self.assertEqual(Order.objects.count(), 0)

    def test_create_order_invalid_type(self):
        """Test an unknown order type is rejected before anything is written"""
        with self.assertRaises(ValidationError):
            self.service.create_order(self.branch.id, 'DRIVE_THRU')

        self.assertEqual(Order.objects.count(), 0)


class AddItemTests(OrderServiceTestCase):
    """Test attaching items to orders"""

    def setUp(self):
        super().setUp()
        self.order_id = self.create_order()

    def test_add_item(self):
        """Test one order item and one kitchen ticket are written"""
        ticket_id = self.service.add_item(self.order_id, self.dosa.id, 2)

        order_item = OrderItem.objects.get(order_id=self.order_id)
        self.assertEqual(order_item.item, self.dosa)
        self.assertEqual(order_item.quantity, 2)
        self.assertEqual(order_item.price, Decimal('100.00'))
        self.assertEqual(order_item.tax_rate, Decimal('5.00'))

        ticket = KitchenTicket.objects.get(pk=ticket_id)
        self.assertEqual(ticket.order_item, order_item)
        self.assertEqual(ticket.order_id, self.order_id)
        self.assertEqual(ticket.item, self.dosa)
        self.assertEqual(ticket.quantity, 2)
        self.assertEqual(ticket.status, KitchenTicket.PENDING)

    def test_price_snapshot_is_frozen(self):
        """Test later catalog changes do not touch attached items"""
        self.service.add_item(self.order_id, self.dosa.id, 1)

        self.dosa.price = Decimal('140.00')
        self.dosa.tax_rate = Decimal('18.00')
        self.dosa.save()
        self.service.add_item(self.order_id, self.dosa.id, 1)

        prices = list(
            OrderItem.objects.filter(order_id=self.order_id)
            .order_by('id')
            .values_list('price', 'tax_rate')
        )
        self.assertEqual(prices, [
            (Decimal('100.00'), Decimal('5.00')),
            (Decimal('140.00'), Decimal('18.00')),
        ])

    def test_repeated_attach_is_not_merged(self):
        """Test attaching the same item twice yields two items and two tickets"""
        first = self.service.add_item(self.order_id, self.coffee.id, 1)
        second = self.service.add_item(self.order_id, self.coffee.id, 1)

        self.assertNotEqual(first, second)
        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 2)
        self.assertEqual(
            list(KitchenTicket.objects.filter(order_id=self.order_id).values_list('quantity', flat=True)),
            [1, 1]
        )

    def test_add_item_unknown_order(self):
        """Test attaching to a missing order is NotFound"""
        with self.assertRaises(NotFound):
            self.service.add_item(9999, self.dosa.id, 1)

    def test_add_item_unknown_item(self):
        """Test attaching a missing item is NotFound and writes nothing"""
        with self.assertRaises(NotFound):
            self.service.add_item(self.order_id, 9999, 1)

        self.assertFalse(OrderItem.objects.exists())
        self.assertFalse(KitchenTicket.objects.exists())

    def test_add_item_invalid_quantity(self):
        """Test non-positive quantities are rejected"""
        for quantity in [0, -2]:
            with self.assertRaises(ValidationError):
                self.service.add_item(self.order_id, self.dosa.id, quantity)

        self.assertFalse(OrderItem.objects.exists())

    def test_add_item_to_cancelled_order(self):
        """Test a cancelled order is still readable but accepts no items"""
        self.service.update_status(self.order_id, Order.CANCELLED)

        with self.assertRaises(OrderClosed):
            self.service.add_item(self.order_id, self.dosa.id, 1)

        self.assertEqual(self.service.get_order(self.order_id).status, Order.CANCELLED)
        self.assertFalse(KitchenTicket.objects.exists())

    def test_add_item_to_billed_order(self):
        """Test a billed order accepts no items"""
        Order.objects.filter(pk=self.order_id).update(status=Order.BILLED)

        with self.assertRaises(OrderClosed):
            self.service.add_item(self.order_id, self.dosa.id, 1)

    def test_add_item_in_progress(self):
        """Test items can still be attached while the kitchen works on the order"""
        self.service.update_status(self.order_id, Order.IN_PROGRESS)

        self.service.add_item(self.order_id, self.dosa.id, 1)

        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 1)

    def test_add_unavailable_item(self):
        """Test unavailable items cannot be attached"""
        self.dosa.is_available = False
        self.dosa.save()

        with self.assertRaises(ValidationError):
            self.service.add_item(self.order_id, self.dosa.id, 1)

    def test_add_item_from_other_branch(self):
        """Test items of another branch's menu cannot be attached"""
        vada = Item.objects.create(
            branch=self.other_branch,
            name="Medu Vada",
            price=Decimal('60.00'),
            tax_rate=Decimal('5.00'),
        )

        with self.assertRaises(ValidationError):
            self.service.add_item(self.order_id, vada.id, 1)

    def test_order_items_are_append_only(self):
        """Test stored order items cannot be edited or deleted"""
        self.service.add_item(self.order_id, self.dosa.id, 1)
        order_item = OrderItem.objects.get(order_id=self.order_id)

        order_item.price = Decimal('1.00')
        with self.assertRaises(IllegalTransition):
            order_item.save()
        with self.assertRaises(IllegalTransition):
            order_item.delete()

        order_item.refresh_from_db()
        self.assertEqual(order_item.price, Decimal('100.00'))

    def test_add_item_quantity_limit(self):
        """Test quantities above the attach limit are rejected before anything is written"""
        with self.assertRaises(ValidationError):
            self.service.add_item(self.order_id, self.dosa.id, MAX_QUANTITY + 1)

        self.assertFalse(OrderItem.objects.exists())
        self.assertFalse(KitchenTicket.objects.exists())

    def test_add_item_total_out_of_range(self):
        """Test an attach that would push the order past the largest billable amount is rejected"""
        banquet = Item.objects.create(
            branch=self.branch,
            name="Wedding Banquet",
            price=Decimal('99999999.99'),
            tax_rate=Decimal('18.00'),
        )
        # 80 x 99999999.99 plus 18% tax still fits the totals columns
        self.service.add_item(self.order_id, banquet.id, 80)

        with self.assertRaises(ValidationError):
            self.service.add_item(self.order_id, banquet.id, MAX_QUANTITY)

        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(KitchenTicket.objects.filter(order_id=self.order_id).count(), 1)

        # The order can still be billed and read back
        totals = BillingEngine(self.store).generate_bill(self.order_id, 'CARD')
        self.assertEqual(totals.subtotal, Decimal('7999999999.20'))
        self.assertEqual(self.service.get_order(self.order_id).net, totals.net)

    def test_add_item_locks_the_order(self):
        """Test the open check reads the order under its row lock inside the transaction"""
        locked = []
        select_for_update = QuerySet.select_for_update

        def record_lock(queryset, *args, **kwargs):
            locked.append((queryset.model, self.store.connection.in_atomic_block))
            return select_for_update(queryset, *args, **kwargs)

        with mock.patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=record_lock):
            self.service.add_item(self.order_id, self.dosa.id, 1)

        self.assertEqual(locked, [(Order, True)])

    def test_add_item_after_concurrent_billing(self):
        """Test an attach that validated before a bill committed still fails OrderClosed"""
        self.service.add_item(self.order_id, self.dosa.id, 1)
        validate = services.validate_input

        def bill_then_validate(*args, **kwargs):
            # Another worker bills the order between validation and the row lock
            BillingEngine(Store()).generate_bill(self.order_id, 'CASH')
            return validate(*args, **kwargs)

        with mock.patch.object(services, 'validate_input', side_effect=bill_then_validate):
            with self.assertRaises(OrderClosed):
                self.service.add_item(self.order_id, self.dosa.id, 2)

        self.assertEqual(Order.objects.get(pk=self.order_id).status, Order.BILLED)
        self.assertEqual(OrderItem.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(KitchenTicket.objects.filter(order_id=self.order_id).count(), 1)
        self.assertEqual(Bill.objects.get(order_id=self.order_id).net, Decimal('105.00'))

    def test_get_order_loads_items_and_tickets(self):
        """Test a fetched order serializes without further queries"""
        self.service.add_item(self.order_id, self.dosa.id, 2)
        self.service.add_item(self.order_id, self.coffee.id, 1)

        order = self.service.get_order(self.order_id)

        with self.assertNumQueries(0):
            data = OrderSerializer(order).data
        self.assertEqual([i['item_name'] for i in data['items']], ['Masala Dosa', 'Filter Coffee'])
        self.assertEqual(len(data['tickets']), 2)


class UpdateStatusTests(OrderServiceTestCase):
    """Test the order status transition table"""

    def setUp(self):
        super().setUp()
        self.order_id = self.create_order()

    def status(self):
        return Order.objects.get(pk=self.order_id).status

    def test_pending_to_in_progress_to_cancelled(self):
        """Test the allowed path through IN_PROGRESS"""
        self.service.update_status(self.order_id, Order.IN_PROGRESS)
        self.assertEqual(self.status(), Order.IN_PROGRESS)

        self.service.update_status(self.order_id, Order.CANCELLED)
        self.assertEqual(self.status(), Order.CANCELLED)

    def test_pending_to_cancelled(self):
        """Test a pending order can be cancelled directly"""
        order = self.service.update_status(self.order_id, Order.CANCELLED)

        self.assertEqual(order.status, Order.CANCELLED)
        self.assertEqual(self.status(), Order.CANCELLED)

    def test_direct_billed_is_rejected(self):
        """Test BILLED can never be set through a status update"""
        for current in [Order.PENDING, Order.IN_PROGRESS]:
            Order.objects.filter(pk=self.order_id).update(status=current)
            with self.assertRaises(IllegalTransition):
                self.service.update_status(self.order_id, Order.BILLED)
            self.assertEqual(self.status(), current)

    def test_no_way_back(self):
        """Test statuses never move backwards"""
        self.service.update_status(self.order_id, Order.IN_PROGRESS)

        with self.assertRaises(IllegalTransition):
            self.service.update_status(self.order_id, Order.PENDING)

    def test_same_status_is_rejected(self):
        """Test a no-op transition is not in the table"""
        with self.assertRaises(IllegalTransition):
            self.service.update_status(self.order_id, Order.PENDING)

    def test_terminal_states(self):
        """Test CANCELLED and BILLED orders cannot change status"""
        self.service.update_status(self.order_id, Order.CANCELLED)
        for target in [Order.PENDING, Order.IN_PROGRESS, Order.CANCELLED]:
            with self.assertRaises(IllegalTransition):
                self.service.update_status(self.order_id, target)

        Order.objects.filter(pk=self.order_id).update(status=Order.BILLED)
        for target in [Order.PENDING, Order.IN_PROGRESS, Order.CANCELLED]:
            with self.assertRaises(IllegalTransition):
                self.service.update_status(self.order_id, target)
        self.assertEqual(self.status(), Order.BILLED)

    def test_unknown_status(self):
        """Test status values outside the enum are validation errors"""
        with self.assertRaises(ValidationError):
            self.service.update_status(self.order_id, 'SERVED')

    def test_unknown_order(self):
        """Test updating a missing order is NotFound"""
        with self.assertRaises(NotFound):
            self.service.update_status(9999, Order.IN_PROGRESS)
        with self.assertRaises(NotFound):
            self.service.update_status(9999, Order.BILLED)


class OrderAdminTests(TestCase):
    """Test the order admin keeps closed orders frozen"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.order = Order.objects.create(branch=self.branch, order_type=Order.DINE_IN, table='T2')
        self.admin = OrderAdmin(Order, admin.site)
        self.request = RequestFactory().get('/admin/orders/order/')

    def test_open_order_is_editable(self):
        readonly = self.admin.get_readonly_fields(self.request, self.order)

        self.assertNotIn('branch', readonly)
        self.assertNotIn('table', readonly)
        self.assertIn('status', readonly)

    def test_closed_order_is_read_only(self):
        for closed in [Order.BILLED, Order.CANCELLED]:
            self.order.status = closed
            readonly = self.admin.get_readonly_fields(self.request, self.order)
            for field in ['branch', 'order_type', 'table', 'customer_id', 'status', 'net']:
                self.assertIn(field, readonly)


class OrderAPITests(APITestCase):
    """Test order API endpoints"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('100.00'),
            tax_rate=Decimal('5.00'),
        )
        # Add API key to all requests
        self.client.defaults['HTTP_X_API_KEY'] = 'demo'

    def create_order(self):
        url = reverse('create_order')
        data = {'branch_id': self.branch.id, 'order_type': 'DINE_IN', 'table': 'T4'}
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data['id']

    def test_create_order(self):
        """Test creating an order"""
        url = reverse('create_order')
        data = {'branch_id': self.branch.id, 'order_type': 'DELIVERY', 'customer_id': 3}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'PENDING')
        self.assertEqual(response.data['order_type'], 'DELIVERY')
        self.assertEqual(response.data['customer_id'], 3)
        self.assertEqual(response.data['items'], [])
        self.assertEqual(Order.objects.count(), 1)

    def test_create_order_invalid_type(self):
        """Test invalid order types are 400"""
        url = reverse('create_order')
        data = {'branch_id': self.branch.id, 'order_type': 'PICNIC'}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')

    def test_create_order_unknown_branch(self):
        """Test unknown branches are 400"""
        url = reverse('create_order')
        data = {'branch_id': 9999, 'order_type': 'COUNTER'}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')

    def test_add_item(self):
        """Test attaching an item returns the ticket and the order"""
        order_id = self.create_order()
        url = reverse('add_item', kwargs={'order_id': order_id})

        response = self.client.post(url, {'item_id': self.dosa.id, 'quantity': 2}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['ticket_id'], KitchenTicket.objects.get().id)
        items = response.data['order']['items']
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]['item_name'], 'Masala Dosa')
        self.assertEqual(items[0]['price'], '100.00')
        self.assertEqual(len(response.data['order']['tickets']), 1)

    def test_add_item_zero_quantity(self):
        """Test zero quantity is 400"""
        order_id = self.create_order()
        url = reverse('add_item', kwargs={'order_id': order_id})

        response = self.client.post(url, {'item_id': self.dosa.id, 'quantity': 0}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')

    def test_add_item_quantity_too_large(self):
        """Test quantities above the attach limit are 400"""
        order_id = self.create_order()
        url = reverse('add_item', kwargs={'order_id': order_id})

        response = self.client.post(url, {'item_id': self.dosa.id, 'quantity': MAX_QUANTITY + 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'ValidationError')
        self.assertIn('quantity', response.data['fields'])
        self.assertFalse(OrderItem.objects.exists())

    def test_add_item_unknown_item(self):
        """Test unknown items are 404"""
        order_id = self.create_order()
        url = reverse('add_item', kwargs={'order_id': order_id})

        response = self.client.post(url, {'item_id': 9999, 'quantity': 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'NotFound')

    def test_add_item_to_cancelled_order(self):
        """Test cancelled orders reject items with OrderClosed"""
        order_id = self.create_order()
        self.client.post(reverse('update_status', kwargs={'order_id': order_id}),
                         {'status': 'CANCELLED'}, format='json')

        url = reverse('add_item', kwargs={'order_id': order_id})
        response = self.client.post(url, {'item_id': self.dosa.id, 'quantity': 1}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'OrderClosed')

        # The order itself is still readable
        response = self.client.get(reverse('get_order', kwargs={'order_id': order_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'CANCELLED')

    def test_update_status(self):
        """Test moving an order to IN_PROGRESS"""
        order_id = self.create_order()
        url = reverse('update_status', kwargs={'order_id': order_id})

        response = self.client.post(url, {'status': 'IN_PROGRESS'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'IN_PROGRESS')

    def test_update_status_to_billed(self):
        """Test BILLED cannot be set directly"""
        order_id = self.create_order()
        url = reverse('update_status', kwargs={'order_id': order_id})

        response = self.client.post(url, {'status': 'BILLED'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'IllegalTransition')
        self.assertEqual(Order.objects.get(pk=order_id).status, Order.PENDING)

    def test_get_order(self):
        """Test reading an order"""
        order_id = self.create_order()

        response = self.client.get(reverse('get_order', kwargs={'order_id': order_id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], order_id)
        self.assertEqual(response.data['table'], 'T4')
        self.assertEqual(response.data['net'], '0.00')

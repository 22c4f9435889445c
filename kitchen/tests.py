from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Branch, Item
from erp.errors import IllegalTransition, NotFound, ValidationError
from erp.store import Store
from orders.models import Order
from orders.services import OrderService

from .models import KitchenTicket
from .services import KitchenTicketGenerator


class KitchenTicketTestCase(TestCase):

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('100.00'),
            tax_rate=Decimal('5.00'),
        )
        self.store = Store()
        self.orders = OrderService(self.store)
        self.tickets = KitchenTicketGenerator(self.store)
        self.order_id = self.orders.create_order(self.branch.id, Order.DINE_IN, table='T1')


class KitchenTicketGeneratorTests(KitchenTicketTestCase):
    """Test ticket emission and completion"""

    def test_emit_copies_quantity(self):
        """Test each attach event yields one PENDING ticket with its quantity"""
        ticket_id = self.orders.add_item(self.order_id, self.dosa.id, 3)

        ticket = KitchenTicket.objects.get(pk=ticket_id)
        self.assertEqual(ticket.quantity, 3)
        self.assertEqual(ticket.status, KitchenTicket.PENDING)
        self.assertEqual(ticket.order_item.quantity, 3)
        self.assertIsNone(ticket.completed_at)

    def test_mark_complete(self):
        """Test completing a pending ticket"""
        ticket_id = self.orders.add_item(self.order_id, self.dosa.id, 1)

        ticket = self.tickets.mark_complete(ticket_id)

        self.assertEqual(ticket.status, KitchenTicket.COMPLETED)
        self.assertIsNotNone(ticket.completed_at)
        self.assertEqual(KitchenTicket.objects.get(pk=ticket_id).status, KitchenTicket.COMPLETED)

    def test_mark_complete_twice(self):
        """Test completing an already completed ticket is rejected"""
        ticket_id = self.orders.add_item(self.order_id, self.dosa.id, 1)
        first = self.tickets.mark_complete(ticket_id)

        with self.assertRaises(IllegalTransition):
            self.tickets.mark_complete(ticket_id)

        # First completion time is kept
        self.assertEqual(KitchenTicket.objects.get(pk=ticket_id).completed_at, first.completed_at)

    def test_mark_complete_missing_ticket(self):
        """Test completing an unknown ticket is NotFound"""
        with self.assertRaises(NotFound):
            self.tickets.mark_complete(9999)

    def test_completing_one_ticket_leaves_the_other(self):
        """Test tickets from repeated attaches are independent"""
        first = self.orders.add_item(self.order_id, self.dosa.id, 1)
        second = self.orders.add_item(self.order_id, self.dosa.id, 1)

        self.tickets.mark_complete(first)

        self.assertEqual(KitchenTicket.objects.get(pk=second).status, KitchenTicket.PENDING)

    def test_tickets_for_branch(self):
        """Test the kitchen queue lists a branch's pending tickets oldest first"""
        first = self.orders.add_item(self.order_id, self.dosa.id, 1)
        second = self.orders.add_item(self.order_id, self.dosa.id, 2)
        done = self.orders.add_item(self.order_id, self.dosa.id, 1)
        self.tickets.mark_complete(done)

        other_branch = Branch.objects.create(name="Station Road")
        vada = Item.objects.create(branch=other_branch, name="Medu Vada", price=Decimal('60.00'))
        other_order = self.orders.create_order(other_branch.id, Order.COUNTER)
        self.orders.add_item(other_order, vada.id, 1)

        pending = self.tickets.tickets_for_branch(self.branch.id)
        self.assertEqual([t.id for t in pending], [first, second])

        everything = self.tickets.tickets_for_branch(self.branch.id, status=None)
        self.assertEqual([t.id for t in everything], [first, second, done])

    def test_tickets_for_branch_invalid_status(self):
        """Test unknown ticket statuses are rejected"""
        with self.assertRaises(ValidationError):
            self.tickets.tickets_for_branch(self.branch.id, status='BURNT')


class KitchenAPITests(APITestCase):
    """Test kitchen API endpoints"""

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
        self.ticket_id = service.add_item(self.order_id, self.dosa.id, 2)
        # Add API key to all requests
        self.client.defaults['HTTP_X_API_KEY'] = 'demo'

    def test_complete_ticket(self):
        """Test completing a ticket over HTTP"""
        url = reverse('complete_ticket', kwargs={'ticket_id': self.ticket_id})

        response = self.client.post(url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'COMPLETED')
        self.assertEqual(response.data['quantity'], 2)
        self.assertEqual(response.data['item_name'], 'Masala Dosa')

    def test_complete_ticket_twice(self):
        """Test the second completion is a conflict"""
        url = reverse('complete_ticket', kwargs={'ticket_id': self.ticket_id})
        self.client.post(url, {}, format='json')

        response = self.client.post(url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'IllegalTransition')

    def test_complete_missing_ticket(self):
        """Test completing an unknown ticket is 404"""
        url = reverse('complete_ticket', kwargs={'ticket_id': 9999})

        response = self.client.post(url, {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'NotFound')

    def test_branch_queue(self):
        """Test listing the kitchen queue of a branch"""
        url = reverse('branch_tickets', kwargs={'branch_id': self.branch.id})

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['id'], self.ticket_id)

        self.client.post(reverse('complete_ticket', kwargs={'ticket_id': self.ticket_id}), {}, format='json')
        self.assertEqual(self.client.get(url).data, [])
        self.assertEqual(len(self.client.get(url, {'status': 'ALL'}).data), 1)

"""
Persistence seam for the order lifecycle.

All queries that create orders, attach items, emit tickets and write bills
go through OrderRepository, so the locking and uniqueness rules that make
concurrent item-adds and billing safe live in one place.
"""
from django.db import IntegrityError, transaction

from billing.models import Bill
from catalog.models import Branch
from erp.errors import AlreadyBilled, NotFound, ValidationError
from kitchen.models import KitchenTicket

from .models import Order, OrderItem


class OrderRepository:

    def __init__(self, store):
        self.store = store

    @property
    def alias(self):
        return self.store.alias

    def create_order(self, branch_id, order_type, table=None, customer_id=None):
        with self.store.guard():
            if not Branch.objects.using(self.alias).filter(pk=branch_id).exists():
                raise ValidationError(f'Branch {branch_id} does not exist')
            return Order.objects.using(self.alias).create(
                branch_id=branch_id,
                order_type=order_type,
                table=table,
                customer_id=customer_id,
                status=Order.PENDING,
            )

    def get_order(self, order_id):
        with self.store.guard():
            # Items and tickets are loaded here so serializing the order runs no queries
            order = (
                Order.objects.using(self.alias)
                .prefetch_related('items__item', 'tickets__order_item__item')
                .filter(pk=order_id)
                .first()
            )
        if order is None:
            raise NotFound(f'Order {order_id} not found')
        return order

    def lock_order(self, order_id):
        """
        Read the order holding its row lock until the enclosing transaction ends.

        Must be called inside Store.atomic().
        """
        with self.store.guard():
            order = Order.objects.using(self.alias).select_for_update().filter(pk=order_id).first()
        if order is None:
            raise NotFound(f'Order {order_id} not found')
        return order

    def append_item(self, order, entry, quantity):
        with self.store.guard():
            return OrderItem.objects.using(self.alias).create(
                order=order,
                item_id=entry.item_id,
                quantity=quantity,
                price=entry.price,
                tax_rate=entry.tax_rate,
            )

    def read_items(self, order_id):
        with self.store.guard():
            return list(OrderItem.objects.using(self.alias).filter(order_id=order_id).order_by('id'))

    def insert_ticket(self, order_item):
        with self.store.guard():
            return KitchenTicket.objects.using(self.alias).create(
                order_id=order_item.order_id,
                order_item=order_item,
                item_id=order_item.item_id,
                quantity=order_item.quantity,
                status=KitchenTicket.PENDING,
            )

    def get_ticket(self, ticket_id):
        with self.store.guard():
            ticket = (
                KitchenTicket.objects.using(self.alias)
                .select_related('order_item__item')
                .filter(pk=ticket_id)
                .first()
            )
        if ticket is None:
            raise NotFound(f'Kitchen ticket {ticket_id} not found')
        return ticket

    def complete_ticket(self, ticket_id, completed_at):
        """Flip a PENDING ticket to COMPLETED. Returns False if it was not PENDING."""
        with self.store.guard():
            updated = (
                KitchenTicket.objects.using(self.alias)
                .filter(pk=ticket_id, status=KitchenTicket.PENDING)
                .update(status=KitchenTicket.COMPLETED, completed_at=completed_at)
            )
        return updated == 1

    def tickets_for_branch(self, branch_id, status=None):
        with self.store.guard():
            tickets = (
                KitchenTicket.objects.using(self.alias)
                .select_related('order_item__item')
                .filter(order__branch_id=branch_id)
            )
            if status is not None:
                tickets = tickets.filter(status=status)
            return list(tickets.order_by('created_at', 'id'))

    def compare_and_swap_status(self, order_id, expected, new_status, **fields):
        """
        UPDATE ... SET status=new_status WHERE id=order_id AND status IN expected.

        Returns True for exactly one caller when several race on the same order.
        """
        with self.store.guard():
            updated = (
                Order.objects.using(self.alias)
                .filter(pk=order_id, status__in=expected)
                .update(status=new_status, **fields)
            )
        return updated == 1

    def insert_transaction(self, order, totals, payment_method):
        with self.store.guard():
            try:
                # Savepoint, so the unique violation leaves the outer transaction usable
                with transaction.atomic(using=self.alias):
                    return Bill.objects.using(self.alias).create(
                        order=order,
                        branch_id=order.branch_id,
                        subtotal=totals.subtotal,
                        tax=totals.tax,
                        net=totals.net,
                        payment_method=payment_method,
                    )
            except IntegrityError as exc:
                raise AlreadyBilled(f'Order {order.pk} has already been billed') from exc

    def find_transaction(self, order_id):
        with self.store.guard():
            return Bill.objects.using(self.alias).filter(order_id=order_id).first()

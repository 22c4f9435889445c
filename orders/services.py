import logging

from billing.calculations import compute_totals, fits
from catalog.lookup import ItemCatalog
from erp.errors import IllegalTransition, OrderClosed, ValidationError
from kitchen.services import KitchenTicketGenerator

from .models import Order, OrderItem
from .repository import OrderRepository
from .serializers import AddItemSerializer, CreateOrderSerializer, UpdateStatusSerializer
from .validation import validate_id, validate_input

logger = logging.getLogger(__name__)

# Status changes allowed through update_status. BILLED is missing on purpose:
# only BillingEngine.generate_bill moves an order there.
TRANSITIONS = {
    Order.PENDING: (Order.IN_PROGRESS, Order.CANCELLED),
    Order.IN_PROGRESS: (Order.CANCELLED,),
    Order.BILLED: (),
    Order.CANCELLED: (),
}


class OrderService:
    """Creates orders, attaches items to them and moves them through their statuses."""

    def __init__(self, store, catalog=None, tickets=None):
        self.store = store
        self.repository = OrderRepository(store)
        self.catalog = catalog or ItemCatalog(store)
        self.tickets = tickets or KitchenTicketGenerator(store, self.repository)

    def create_order(self, branch_id, order_type, table=None, customer_id=None):
        fields = validate_input(
            CreateOrderSerializer,
            branch_id=branch_id, order_type=order_type, table=table, customer_id=customer_id,
        )
        order = self.repository.create_order(**fields)
        logger.info("Order %s created at branch %s (%s)", order.id, order.branch_id, order.order_type)
        return order.id

    def get_order(self, order_id):
        return self.repository.get_order(validate_id(order_id, 'order'))

    def add_item(self, order_id, item_id, quantity):
        """
        Attach quantity x item to an open order and send it to the kitchen.

        The current catalog price and tax rate are copied onto the order item.
        Returns the id of the kitchen ticket.
        """
        order_id = validate_id(order_id, 'order')
        data = validate_input(AddItemSerializer, item_id=item_id, quantity=quantity)
        item_id, quantity = data['item_id'], data['quantity']

        with self.store.atomic():
            # Row lock serializes this check against a concurrent status flip
            order = self.repository.lock_order(order_id)
            if not order.is_open:
                raise OrderClosed(f'Order {order.id} is {order.status} and no longer accepts items')

            entry = self.catalog.lookup(item_id)
            if entry.branch_id != order.branch_id:
                raise ValidationError(f'Item {item_id} is not on the menu of branch {order.branch_id}')
            if not entry.is_available:
                raise ValidationError(f'Item {item_id} is currently unavailable')

            line = OrderItem(quantity=quantity, price=entry.price, tax_rate=entry.tax_rate)
            if not fits(compute_totals(self.repository.read_items(order.id) + [line])):
                raise ValidationError(f'Order {order.id} total would exceed the largest billable amount')

            order_item = self.repository.append_item(order, entry, quantity)
            ticket = self.tickets.emit(order_item)

        logger.info(
            "Order %s: attached %s x %s at %s (tax %s%%)",
            order.id, quantity, entry.name, entry.price, entry.tax_rate,
        )
        return ticket.id

    def update_status(self, order_id, new_status):
        order_id = validate_id(order_id, 'order')
        new_status = validate_input(UpdateStatusSerializer, status=new_status)['status']

        with self.store.atomic():
            order = self.repository.lock_order(order_id)
            if new_status == Order.BILLED:
                raise IllegalTransition('Orders can only be billed by generating a bill')
            if new_status not in TRANSITIONS[order.status]:
                raise IllegalTransition(f'Cannot move order {order.id} from {order.status} to {new_status}')
            if not self.repository.compare_and_swap_status(order.id, (order.status,), new_status):
                raise IllegalTransition(f'Order {order.id} changed status concurrently')
            previous = order.status
            order.status = new_status

        logger.info("Order %s: %s -> %s", order.id, previous, new_status)
        return order

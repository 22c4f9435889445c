import logging

from erp.errors import AlreadyBilled, BillNotFound, NoItems, OrderClosed, ValidationError
from orders.models import Order
from orders.repository import OrderRepository
from orders.validation import validate_id, validate_input

from .calculations import compute_totals, fits
from .serializers import GenerateBillSerializer

logger = logging.getLogger(__name__)


class BillingEngine:
    """
    Produces the single bill of an order.

    The bill row and the order's BILLED status (with its totals) are written
    in one database transaction. Concurrent callers are separated by the row
    lock on the order, the conditional status update and the unique order
    reference on Bill; every loser gets AlreadyBilled.
    """

    def __init__(self, store):
        self.store = store
        self.repository = OrderRepository(store)

    def generate_bill(self, order_id, payment_method):
        order_id = validate_id(order_id, 'order')
        payment_method = validate_input(GenerateBillSerializer, payment_method=payment_method)['payment_method']

        with self.store.atomic():
            order = self.repository.lock_order(order_id)
            if order.status == Order.BILLED or self.repository.find_transaction(order.id) is not None:
                raise AlreadyBilled(f'Order {order.id} has already been billed')
            if order.status == Order.CANCELLED:
                raise OrderClosed(f'Order {order.id} is cancelled and cannot be billed')

            items = self.repository.read_items(order.id)
            if not items:
                raise NoItems(f'Order {order.id} has no items to bill')

            totals = compute_totals(items)
            if not fits(totals):
                raise ValidationError(f'Order {order.id} total {totals.net} exceeds the largest billable amount')
            if not self.repository.compare_and_swap_status(
                order.id, Order.OPEN_STATUSES, Order.BILLED,
                subtotal=totals.subtotal, tax=totals.tax, net=totals.net,
            ):
                logger.warning("Order %s: lost billing race on status update", order.id)
                raise AlreadyBilled(f'Order {order.id} has already been billed')
            try:
                bill = self.repository.insert_transaction(order, totals, payment_method)
            except AlreadyBilled:
                logger.warning("Order %s: lost billing race on bill insert", order.id)
                raise

        logger.info(
            "Order %s billed: bill %s subtotal=%s tax=%s net=%s (%s)",
            order.id, bill.id, totals.subtotal, totals.tax, totals.net, payment_method,
        )
        return totals

    def view_bill(self, order_id):
        """Return the stored bill; it is never recomputed."""
        order_id = validate_id(order_id, 'order')
        bill = self.repository.find_transaction(order_id)
        if bill is None:
            raise BillNotFound(f'No bill has been generated for order {order_id}')
        return bill

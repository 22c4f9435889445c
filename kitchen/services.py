import logging

from django.utils import timezone

from erp.errors import IllegalTransition
from orders.repository import OrderRepository
from orders.validation import validate_id, validate_input

from .models import KitchenTicket
from .serializers import TicketQueueSerializer

logger = logging.getLogger(__name__)


class KitchenTicketGenerator:
    """
    Turns item-attach events into kitchen tickets (KOTs).

    Every attach produces its own ticket with the attached quantity; tickets
    are never merged or batched across calls.
    """

    def __init__(self, store, repository=None):
        self.store = store
        self.repository = repository or OrderRepository(store)

    def emit(self, order_item):
        ticket = self.repository.insert_ticket(order_item)
        logger.info(
            "KOT %s: %s x item %s for order %s",
            ticket.id, ticket.quantity, ticket.item_id, ticket.order_id,
        )
        return ticket

    def mark_complete(self, ticket_id):
        # Completing twice is rejected rather than ignored
        ticket_id = validate_id(ticket_id, 'ticket')
        with self.store.atomic():
            ticket = self.repository.get_ticket(ticket_id)
            if not self.repository.complete_ticket(ticket.id, timezone.now()):
                raise IllegalTransition(f'Kitchen ticket {ticket.id} is already completed')
            ticket = self.repository.get_ticket(ticket.id)
        logger.info("KOT %s completed for order %s", ticket.id, ticket.order_id)
        return ticket

    def tickets_for_branch(self, branch_id, status=KitchenTicket.PENDING):
        """Kitchen queue for a branch, oldest first."""
        branch_id = validate_id(branch_id, 'branch')
        status = validate_input(TicketQueueSerializer, status=status)['status']
        return self.repository.tickets_for_branch(branch_id, status=status)

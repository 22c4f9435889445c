from django.db import models

from catalog.models import Item
from orders.models import Order, OrderItem


class KitchenTicket(models.Model):
	PENDING = 'PENDING'
	COMPLETED = 'COMPLETED'

	STATUS_CHOICES = [
		(PENDING, 'Pending'),
		(COMPLETED, 'Completed'),
	]

	order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='tickets')
	# One ticket per attach event, never merged
	order_item = models.OneToOneField(OrderItem, on_delete=models.PROTECT, related_name='ticket')
	item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='+')
	quantity = models.PositiveIntegerField()
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
	created_at = models.DateTimeField(auto_now_add=True)
	completed_at = models.DateTimeField(null=True, blank=True)

	def __str__(self):
		return f"KOT {self.id}: {self.quantity} x item {self.item_id} for Order {self.order_id}"

from django.db import models

from catalog.models import Branch
from orders.models import AppendOnlyModel, Order


class Bill(AppendOnlyModel):
	"""
	The transaction that finalizes an order. At most one per order, ever:
	the one-to-one order reference is backed by a unique constraint.
	"""
	order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name='bill')
	branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='bills')
	subtotal = models.DecimalField(max_digits=12, decimal_places=2)
	tax = models.DecimalField(max_digits=12, decimal_places=2)
	net = models.DecimalField(max_digits=12, decimal_places=2)
	payment_method = models.CharField(max_length=50)
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"Bill {self.id} for Order {self.order_id} - {self.net}"

from decimal import Decimal

from django.db import models

from catalog.models import Branch, Item
from erp.errors import IllegalTransition


class AppendOnlyModel(models.Model):
	"""Rows are immutable facts: written once, never updated or deleted."""

	class Meta:
		abstract = True

	def save(self, *args, **kwargs):
		if not self._state.adding:
			raise IllegalTransition(f'{type(self).__name__} records cannot be modified')
		super().save(*args, **kwargs)

	def delete(self, *args, **kwargs):
		raise IllegalTransition(f'{type(self).__name__} records cannot be deleted')


class Order(models.Model):
	PENDING = 'PENDING'
	IN_PROGRESS = 'IN_PROGRESS'
	BILLED = 'BILLED'
	CANCELLED = 'CANCELLED'

	STATUS_CHOICES = [
		(PENDING, 'Pending'),
		(IN_PROGRESS, 'In progress'),
		(BILLED, 'Billed'),
		(CANCELLED, 'Cancelled'),
	]
	OPEN_STATUSES = (PENDING, IN_PROGRESS)

	DINE_IN = 'DINE_IN'
	COUNTER = 'COUNTER'
	DELIVERY = 'DELIVERY'

	TYPE_CHOICES = [
		(DINE_IN, 'Dine-in'),
		(COUNTER, 'Counter'),
		(DELIVERY, 'Delivery'),
	]

	branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='orders')
	order_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
	table = models.CharField(max_length=20, null=True, blank=True)
	customer_id = models.PositiveIntegerField(null=True, blank=True)
	status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
	# Filled in by billing
	subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
	tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
	net = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
	created_at = models.DateTimeField(auto_now_add=True)

	def __str__(self):
		return f"Order {self.id} ({self.get_order_type_display()}, {self.status})"

	@property
	def is_open(self):
		return self.status in self.OPEN_STATUSES


class OrderItem(AppendOnlyModel):
	order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='items')
	item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='order_items')
	quantity = models.PositiveIntegerField()
	# Price and tax rate as they were when the item was attached
	price = models.DecimalField(max_digits=10, decimal_places=2)
	tax_rate = models.DecimalField(max_digits=5, decimal_places=2)

	def __str__(self):
		return f"{self.quantity} x {self.item.name} for Order {self.order_id}"

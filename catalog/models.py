from django.db import models


class Branch(models.Model):
	name = models.CharField(max_length=255)
	location = models.CharField(max_length=255, blank=True, default='')

	def __str__(self):
		return self.name


class Item(models.Model):
	branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name='items')
	name = models.CharField(max_length=255)
	price = models.DecimalField(max_digits=10, decimal_places=2)
	tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0)
	category = models.CharField(max_length=100, blank=True, default='')
	is_available = models.BooleanField(default=True)

	def __str__(self):
		return f"{self.name} ({self.branch.name})"

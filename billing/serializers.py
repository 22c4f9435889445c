from rest_framework import serializers
from .models import Bill


class BillSerializer(serializers.ModelSerializer):
    class Meta:
        model = Bill
        fields = ['id', 'order', 'branch', 'subtotal', 'tax', 'net',
                 'payment_method', 'created_at']
        read_only_fields = fields


class GenerateBillSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=50, help_text="e.g. CASH, CARD, UPI")


class BillTotalsSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2)
    net = serializers.DecimalField(max_digits=12, decimal_places=2)

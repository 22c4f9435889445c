from rest_framework import serializers
from .models import KitchenTicket


class KitchenTicketSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='order_item.item.name', read_only=True)

    class Meta:
        model = KitchenTicket
        fields = ['id', 'order', 'order_item', 'item', 'item_name', 'quantity',
                 'status', 'created_at', 'completed_at']
        read_only_fields = fields


class TicketQueueSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=KitchenTicket.STATUS_CHOICES, allow_null=True,
                                     help_text="Ticket status to list; null for every ticket")

from rest_framework import serializers

from kitchen.serializers import KitchenTicketSerializer

from .models import Order, OrderItem

# Largest quantity a single attach may carry
MAX_QUANTITY = 1000


def id_field(**kwargs):
    """Positive integer identifier; booleans are rejected as invalid."""
    return serializers.IntegerField(min_value=1, **kwargs)


class OrderItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'item', 'item_name', 'quantity', 'price', 'tax_rate']
        read_only_fields = fields
        extra_kwargs = {
            'price': {'help_text': 'Unit price when the item was attached'},
            'tax_rate': {'help_text': 'GST rate in percent when the item was attached'},
        }


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    tickets = KitchenTicketSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'branch', 'order_type', 'table', 'customer_id', 'status',
                 'subtotal', 'tax', 'net', 'created_at', 'items', 'tickets']
        read_only_fields = fields
        extra_kwargs = {
            'subtotal': {'help_text': 'Sum of quantity x price over all items (zero until billed)'},
            'tax': {'help_text': 'Sum of per-line GST (zero until billed)'},
            'net': {'help_text': 'subtotal + tax (zero until billed)'},
        }


class CreateOrderSerializer(serializers.Serializer):
    branch_id = id_field(help_text="ID of the branch taking the order")
    order_type = serializers.ChoiceField(choices=Order.TYPE_CHOICES)
    table = serializers.CharField(max_length=20, required=False, allow_null=True, allow_blank=True,
                                  help_text="Table designator for dine-in orders")
    customer_id = id_field(required=False, allow_null=True)

    def validate_table(self, value):
        # Blank designators are stored as no table
        return value or None


class AddItemSerializer(serializers.Serializer):
    item_id = id_field(help_text="ID of the catalog item to attach")
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY,
                                        help_text=f"Quantity to attach (1 to {MAX_QUANTITY})")


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)


class AddItemResponseSerializer(serializers.Serializer):
    ticket_id = serializers.IntegerField(help_text="Kitchen ticket created for this attach")
    order = OrderSerializer()

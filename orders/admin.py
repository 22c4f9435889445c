from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ['item', 'quantity', 'price', 'tax_rate']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'branch', 'order_type', 'table', 'status', 'created_at', 'net']
    list_filter = ['status', 'order_type', 'branch', 'created_at']
    search_fields = ['table', 'customer_id']
    # Status and totals are owned by the order and billing services
    readonly_fields = ['status', 'subtotal', 'tax', 'net', 'created_at']
    inlines = [OrderItemInline]

    def get_readonly_fields(self, request, obj=None):
        readonly = list(super().get_readonly_fields(request, obj))
        # Billed and cancelled orders are frozen; the bill copies the branch
        if obj is not None and not obj.is_open:
            readonly += ['branch', 'order_type', 'table', 'customer_id']
        return readonly


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ['order', 'item', 'quantity', 'price', 'tax_rate']
    list_filter = ['order__status', 'item']
    search_fields = ['order__table', 'item__name']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin
from .models import KitchenTicket


@admin.register(KitchenTicket)
class KitchenTicketAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'item', 'quantity', 'status', 'created_at', 'completed_at']
    list_filter = ['status', 'order__branch', 'created_at']
    search_fields = ['order__table']
    readonly_fields = ['order', 'order_item', 'item', 'quantity', 'created_at']

from django.contrib import admin
from .models import Bill


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'branch', 'subtotal', 'tax', 'net', 'payment_method', 'created_at']
    list_filter = ['branch', 'payment_method', 'created_at']
    search_fields = ['order__id', 'order__table']
    readonly_fields = ['created_at']

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin
from .models import Branch, Item


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'location']
    search_fields = ['name', 'location']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'branch', 'price', 'tax_rate', 'category', 'is_available']
    search_fields = ['name', 'category']
    list_filter = ['branch', 'is_available', 'tax_rate']

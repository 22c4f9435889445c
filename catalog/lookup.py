import logging
from collections import namedtuple

from erp.errors import NotFound

from .models import Item

logger = logging.getLogger(__name__)

CatalogEntry = namedtuple('CatalogEntry', ['item_id', 'branch_id', 'name', 'price', 'tax_rate', 'is_available'])


class ItemCatalog:
    """Read-only view of the menu: item id -> current price and tax rate."""

    def __init__(self, store):
        self.store = store

    def lookup(self, item_id):
        with self.store.guard():
            item = (
                Item.objects.using(self.store.alias)
                .filter(pk=item_id)
                .values('id', 'branch_id', 'name', 'price', 'tax_rate', 'is_available')
                .first()
            )
        if item is None:
            raise NotFound(f'Item {item_id} not found')
        return CatalogEntry(
            item_id=item['id'],
            branch_id=item['branch_id'],
            name=item['name'],
            price=item['price'],
            tax_rate=item['tax_rate'],
            is_available=item['is_available'],
        )

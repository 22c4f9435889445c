from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from erp.errors import NotFound
from erp.store import Store

from .lookup import ItemCatalog
from .models import Branch, Item


class ItemCatalogTests(TestCase):
    """Test catalog lookups used when attaching items"""

    def setUp(self):
        self.branch = Branch.objects.create(name="Main Street")
        self.dosa = Item.objects.create(
            branch=self.branch,
            name="Masala Dosa",
            price=Decimal('120.00'),
            tax_rate=Decimal('5.00'),
            category="Mains",
        )
        self.catalog = ItemCatalog(Store())

    def test_lookup(self):
        """Test lookup returns the current price and tax rate"""
        entry = self.catalog.lookup(self.dosa.id)

        self.assertEqual(entry.item_id, self.dosa.id)
        self.assertEqual(entry.branch_id, self.branch.id)
        self.assertEqual(entry.price, Decimal('120.00'))
        self.assertEqual(entry.tax_rate, Decimal('5.00'))
        self.assertTrue(entry.is_available)

    def test_lookup_reflects_price_changes(self):
        """Test the catalog always answers with the latest price"""
        self.dosa.price = Decimal('130.00')
        self.dosa.save()

        self.assertEqual(self.catalog.lookup(self.dosa.id).price, Decimal('130.00'))

    def test_lookup_missing_item(self):
        """Test unknown items are NotFound"""
        with self.assertRaises(NotFound):
            self.catalog.lookup(9999)


class SeedCatalogCommandTests(TestCase):
    """Test the seed_catalog management command"""

    def test_seed_creates_branch_and_menu(self):
        """Test seeding creates a branch with items"""
        out = StringIO()
        call_command('seed_catalog', stdout=out)

        branch = Branch.objects.get(name="Main Street")
        self.assertEqual(Item.objects.filter(branch=branch).count(), 7)
        self.assertIn('Total new menu items created: 7', out.getvalue())

    def test_seed_is_idempotent(self):
        """Test running the command twice does not duplicate items"""
        call_command('seed_catalog', stdout=StringIO())
        out = StringIO()
        call_command('seed_catalog', stdout=out)

        self.assertEqual(Item.objects.count(), 7)
        self.assertIn('Already exists: Masala Dosa', out.getvalue())

    def test_seed_clear(self):
        """Test --clear replaces unused items"""
        call_command('seed_catalog', stdout=StringIO())
        Item.objects.filter(name="Filter Coffee").update(price=Decimal('999.00'))

        call_command('seed_catalog', '--clear', stdout=StringIO())

        self.assertEqual(Item.objects.count(), 7)
        self.assertEqual(Item.objects.get(name="Filter Coffee").price, Decimal('50.00'))

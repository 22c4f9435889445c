from decimal import Decimal

from django.core.management.base import BaseCommand

from catalog.models import Branch, Item


class Command(BaseCommand):
    help = 'Seed the database with a demo branch and its menu'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing menu items that have never been ordered before seeding',
        )
        parser.add_argument(
            '--branch',
            default='Main Street',
            help='Name of the branch to seed (created if missing)',
        )

    def handle(self, *args, **options):
        branch, _ = Branch.objects.get_or_create(
            name=options['branch'],
            defaults={'location': 'Ground floor'},
        )

        if options['clear']:
            self.stdout.write('Clearing unused menu items...')
            # Items already sold are referenced by order items and stay
            deleted, _ = Item.objects.filter(branch=branch, order_items__isnull=True).delete()
            self.stdout.write(
                self.style.SUCCESS(f'Cleared {deleted} menu items')
            )

        menu_items = [
            {"name": "Masala Dosa", "price": "120.00", "tax_rate": "5.00", "category": "Mains"},
            {"name": "Paneer Tikka", "price": "220.00", "tax_rate": "5.00", "category": "Starters"},
            {"name": "Veg Biryani", "price": "180.00", "tax_rate": "5.00", "category": "Mains"},
            {"name": "Filter Coffee", "price": "50.00", "tax_rate": "12.00", "category": "Beverages"},
            {"name": "Mango Lassi", "price": "90.00", "tax_rate": "12.00", "category": "Beverages"},
            {"name": "Gulab Jamun", "price": "70.00", "tax_rate": "18.00", "category": "Desserts"},
            {"name": "Packaged Water", "price": "20.00", "tax_rate": "18.00", "category": "Beverages"},
        ]

        created_items = []
        for item_data in menu_items:
            item, created = Item.objects.get_or_create(
                branch=branch,
                name=item_data['name'],
                defaults={
                    'price': Decimal(item_data['price']),
                    'tax_rate': Decimal(item_data['tax_rate']),
                    'category': item_data['category'],
                }
            )
            if created:
                created_items.append(item)
                self.stdout.write(
                    f"Created: {item.name} - {item.price} (GST: {item.tax_rate}%)"
                )
            else:
                self.stdout.write(f"Already exists: {item.name}")

        self.stdout.write(
            self.style.SUCCESS(f'\nTotal new menu items created: {len(created_items)}')
        )

        self.stdout.write(f"\nMenu for branch {branch.id} ({branch.name}):")
        self.stdout.write("-" * 60)
        for item in Item.objects.filter(branch=branch).order_by('name'):
            self.stdout.write(
                f"ID: {item.id:3d} | {item.name:20s} | {item.price:8.2f} | GST: {item.tax_rate:5.2f}%"
            )

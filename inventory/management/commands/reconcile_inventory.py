"""
Management command to check stock counts against the inventory ledger.

Usage:
    python manage.py reconcile_inventory
    python manage.py reconcile_inventory --product 42
"""
from django.core.management.base import BaseCommand, CommandError

from core.exceptions import NotFound
from inventory import services


class Command(BaseCommand):
    help = 'Recompute stock from inventory history and repair any drift'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product',
            type=int,
            help='Only reconcile this product id',
        )

    def handle(self, *args, **options):
        if options['product'] is not None:
            try:
                results = [services.reconcile(options['product'])]
            except NotFound as e:
                raise CommandError(str(e))
            results = [r for r in results if r.corrected]
        else:
            results = services.reconcile_all()

        for result in results:
            self.stdout.write(self.style.WARNING(
                f'  Product #{result.product_id}: record={result.recorded_quantity}, '
                f'stock={result.product_stock} -> {result.derived_quantity}'
            ))

        if results:
            self.stdout.write(self.style.SUCCESS(f'Corrected {len(results)} record(s).'))
        else:
            self.stdout.write(self.style.SUCCESS('All inventory records are consistent.'))

"""
Book a supplier invoice into a location.

Usage:
    python manage.py import_invoice <tenant> <location_id> invoice.json --actor u1
    python manage.py import_invoice <tenant> <location_id> invoice.json --actor u1 --match

The file holds either a list of lines or an object with a "lines" list
(and optionally a "reference"). Each line:
    {"item_name": "Olive Oil", "quantity": 20, "unit": "L",
     "unit_price": 9, "is_new": true, "stock_item_id": null}
"""
import json
import logging

from django.core.management.base import BaseCommand, CommandError

from stock.services import InvoiceImportService, ServiceError

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Import the lines of a supplier invoice as stock receipts'

    def add_arguments(self, parser):
        parser.add_argument('tenant', help='Tenant id')
        parser.add_argument('location_id', type=int, help='Receiving location id')
        parser.add_argument('file', help='Path to the invoice JSON file')
        parser.add_argument('--actor', required=True, help='Actor id recorded on every receipt')
        parser.add_argument('--reference', default=None, help='Invoice number or other reference')
        parser.add_argument('--match', action='store_true',
                            help='Match lines without stock_item_id/is_new to existing items by name')

    def handle(self, *args, **options):
        try:
            with open(options['file'], encoding='utf-8') as fh:
                payload = json.load(fh)
        except OSError as e:
            raise CommandError(f"Cannot read {options['file']}: {e}")
        except json.JSONDecodeError as e:
            raise CommandError(f"Invalid JSON in {options['file']}: {e}")

        if isinstance(payload, dict):
            lines = payload.get('lines')
            reference = options['reference'] or payload.get('reference', '')
        else:
            lines = payload
            reference = options['reference'] or ''

        try:
            if options['match'] and isinstance(lines, list):
                lines = InvoiceImportService.match_lines(options['tenant'], lines)
            result = InvoiceImportService.run(
                options['tenant'],
                location_id=options['location_id'],
                lines=lines,
                actor_id=options['actor'],
                reference=reference,
            )
        except ServiceError as e:
            logger.error("Invoice import rejected", extra={"error_code": e.code})
            raise CommandError(f"{e.code}: {e.message}")

        batch = result['import']
        for line in batch['lines']:
            if line['status'] == 'APPLIED':
                self.stdout.write(self.style.SUCCESS(
                    f"  #{line['line_number']} {line['item_name']}: +{line['quantity']} "
                    f"(item {line['stock_item_id']}{', new' if line['is_new'] else ''})"
                ))
            else:
                self.stdout.write(self.style.ERROR(
                    f"  #{line['line_number']} {line['item_name']}: "
                    f"{line['error']['code']} {line['error']['message']}"
                ))

        style = self.style.SUCCESS if result['failed_count'] == 0 else self.style.WARNING
        self.stdout.write(style(
            f"Import {batch['id']} {batch['status']}: "
            f"{result['applied_count']} applied, {result['failed_count']} failed"
        ))

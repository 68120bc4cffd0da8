"""
Tests for the location registry, the item store and the ledger read side.
"""
from decimal import Decimal

from django.db import IntegrityError, transaction

from stock.models import (
    Location, StockItem, StockLevel, StockTransaction, LedgerImmutableError,
)
from stock.services import (
    LocationService, StockItemService, StockTransactionService, StockLedgerService,
    ValidationError, NotFoundError, BusinessRuleError,
)
from stock.tests.base import LedgerTestCase, TENANT, OTHER_TENANT, ACTOR

Movement = StockTransaction.MovementType


class LocationServiceTests(LedgerTestCase):

    def test_create_location(self):
        result = LocationService.create(TENANT, '  Walk-in Freezer ')
        location = Location.objects.get(id=result['id'])
        self.assertEqual(location.name, 'Walk-in Freezer')
        self.assertTrue(location.is_active)

    def test_names_unique_per_tenant(self):
        with self.assertRaises(ValidationError):
            LocationService.create(TENANT, 'main store')
        # Same name in another tenant is fine.
        LocationService.create(OTHER_TENANT, 'Kitchen Fridge')

    def test_names_unique_ignoring_case_in_database(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Location.objects.create(tenant_id=TENANT, name='MAIN STORE')
        Location.objects.create(tenant_id=OTHER_TENANT, name='kitchen fridge')

    def test_blank_name_rejected(self):
        with self.assertRaises(ValidationError):
            LocationService.create(TENANT, '   ')

    def test_list_is_tenant_scoped(self):
        names = [loc['name'] for loc in LocationService.list(TENANT)['locations']]
        self.assertEqual(names, ['Dry Store', 'Kitchen Fridge', 'Main Store'])

    def test_rename(self):
        LocationService.rename(TENANT, self.loc_c.id, 'Pantry')
        self.assertEqual(Location.objects.get(id=self.loc_c.id).name, 'Pantry')

    def test_remove_refused_while_holding_stock(self):
        self.stock(self.flour, self.loc_c, 1)
        with self.assertRaises(BusinessRuleError):
            LocationService.remove(TENANT, self.loc_c.id)

    def test_remove_referenced_location_deactivates(self):
        self.stock(self.flour, self.loc_a, 2)
        self.stock(self.flour, self.loc_c, 2)
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_c.id, self.loc_a.id, 2, ACTOR)

        result = LocationService.remove(TENANT, self.loc_c.id)

        self.assertFalse(result['deleted'])
        self.assertTrue(result['deactivated'])
        self.assertFalse(Location.objects.get(id=self.loc_c.id).is_active)
        names = [loc['name'] for loc in LocationService.list(TENANT)['locations']]
        self.assertNotIn('Dry Store', names)

    def test_remove_unused_location_deletes(self):
        result = LocationService.remove(TENANT, self.loc_c.id)
        self.assertTrue(result['deleted'])
        self.assertFalse(Location.objects.filter(id=self.loc_c.id).exists())

    def test_other_tenant_location_not_found(self):
        with self.assertRaises(NotFoundError):
            LocationService.get(TENANT, self.foreign_loc.id)


class StockItemServiceTests(LedgerTestCase):

    def test_create_with_initial_quantity_books_opening_balance(self):
        result = StockItemService.create(
            TENANT, 'Sugar', 'kg', actor_id=ACTOR,
            reorder_point=3, default_location_id=self.loc_a.id, initial_quantity=12,
        )

        item = StockItem.objects.get(id=result['id'])
        self.assertEqual(item.total_quantity, Decimal('12'))
        self.assertEqual(item.default_location, self.loc_a)
        self.assertEqual(item.version, 1)

        entry = item.transactions.get()
        self.assertEqual(entry.movement_type, Movement.INITIAL)
        self.assertEqual(entry.quantity_change, Decimal('12'))
        self.assertEqual(entry.actor_id, ACTOR)

    def test_create_without_quantity_has_no_levels(self):
        result = StockItemService.create(TENANT, 'Salt', 'kg')
        item = StockItem.objects.get(id=result['id'])
        self.assertEqual(item.locations, [])
        self.assertFalse(item.transactions.exists())

    def test_initial_quantity_needs_location(self):
        with self.assertRaises(ValidationError):
            StockItemService.create(TENANT, 'Salt', 'kg', actor_id=ACTOR, initial_quantity=3)

    def test_total_and_low_stock(self):
        self.stock(self.flour, self.loc_a, 2)
        self.stock(self.flour, self.loc_b, 3)
        self.assertEqual(StockItemService.total_quantity(TENANT, self.flour.id), Decimal('5'))
        # reorder point 5: at the threshold counts as low
        self.assertTrue(StockItemService.is_low_stock(TENANT, self.flour.id))

        self.stock(self.flour, self.loc_b, 1)
        self.assertFalse(StockItemService.is_low_stock(TENANT, self.flour.id))

    def test_low_stock_alerts(self):
        self.stock(self.flour, self.loc_a, 10)
        alerts = StockItemService.get_low_stock(TENANT)['alerts']

        names = [a['stock_item_name'] for a in alerts]
        self.assertEqual(names, ['Butter'])
        self.assertEqual(Decimal(alerts[0]['shortage']), Decimal('2'))

    def test_list_filters(self):
        self.stock(self.flour, self.loc_a, 10)
        low = StockItemService.list(TENANT, low_stock_only=True)['items']
        self.assertEqual([i['name'] for i in low], ['Butter'])

        found = StockItemService.list(TENANT, search='flo')['items']
        self.assertEqual([i['name'] for i in found], ['Flour'])

        at_a = StockItemService.list(TENANT, location_id=self.loc_a.id)['items']
        self.assertEqual([i['name'] for i in at_a], ['Flour'])

    def test_update_descriptive_fields(self):
        StockItemService.update(
            TENANT, self.butter.id, name='Unsalted Butter', reorder_point='1.5',
            default_location_id=self.loc_b.id,
        )
        item = self.fresh(self.butter)
        self.assertEqual(item.name, 'Unsalted Butter')
        self.assertEqual(item.reorder_point, Decimal('1.5'))
        self.assertEqual(item.default_location, self.loc_b)

    def test_get_other_tenant_item(self):
        with self.assertRaises(NotFoundError):
            StockItemService.get(TENANT, self.foreign_item.id)

    def test_level_constraints(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                StockLevel.objects.create(stock_item=self.flour, location=self.loc_a, quantity=-1)

        StockLevel.objects.create(stock_item=self.flour, location=self.loc_a, quantity=1)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                StockLevel.objects.create(stock_item=self.flour, location=self.loc_a, quantity=1)


class LedgerReadTests(LedgerTestCase):

    def setUp(self):
        self.stock(self.flour, self.loc_a, 10)
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 4, ACTOR)
        StockLedgerService.deduct_waste(TENANT, self.flour.id, 1, 'spoiled', ACTOR)

    def test_history_in_time_order(self):
        result = StockTransactionService.history(TENANT, self.flour.id)
        types = [t['movement_type'] for t in result['transactions']]
        self.assertEqual(types, ['receipt', 'transfer_out', 'transfer_in', 'waste'])
        self.assertEqual(Decimal(result['net_change']), Decimal('9'))

    def test_history_filters(self):
        at_b = StockTransactionService.history(TENANT, self.flour.id, location_id=self.loc_b.id)
        self.assertEqual([t['movement_type'] for t in at_b['transactions']], ['transfer_in'])

        waste = StockTransactionService.history(TENANT, self.flour.id, movement_type='waste')
        self.assertEqual(waste['count'], 1)

        with self.assertRaises(ValidationError):
            StockTransactionService.history(TENANT, self.flour.id, movement_type='theft')

    def test_history_other_tenant(self):
        with self.assertRaises(NotFoundError):
            StockTransactionService.history(OTHER_TENANT, self.flour.id)

    def test_list_paginates_newest_first(self):
        result = StockTransactionService.list(TENANT, page=1, per_page=2)
        self.assertEqual(result['pagination']['total_items'], 4)
        self.assertEqual(result['transactions'][0]['movement_type'], 'waste')

    def test_verify_detects_tampering(self):
        StockLevel.objects.filter(stock_item=self.flour, location=self.loc_b).update(quantity=99)
        result = StockTransactionService.verify(TENANT, self.flour.id)
        self.assertFalse(result['consistent'])
        self.assertEqual(result['mismatches'][0]['location_id'], self.loc_b.id)


class LedgerImmutabilityTests(LedgerTestCase):

    def setUp(self):
        self.stock(self.flour, self.loc_a, 3)
        self.entry = StockTransaction.objects.get(stock_item=self.flour)

    def test_saved_entry_cannot_be_changed(self):
        self.entry.notes = 'edited'
        with self.assertRaises(LedgerImmutableError):
            self.entry.save()

    def test_entry_cannot_be_deleted(self):
        with self.assertRaises(LedgerImmutableError):
            self.entry.delete()

    def test_queryset_update_and_delete_blocked(self):
        with self.assertRaises(LedgerImmutableError):
            StockTransaction.objects.filter(id=self.entry.id).update(notes='x')
        with self.assertRaises(LedgerImmutableError):
            StockTransaction.objects.all().delete()

        self.assertEqual(StockTransaction.objects.get(id=self.entry.id).notes, '')

"""
Tests for the ledger engine.

Test coverage:
- transfer: conservation, cross-linked legs, insufficient stock, validation
- manual_adjust: add, subtract clamped at zero, warnings
- reconcile_stock_take: idempotence, notes, bulk counts
- receive: existing items, new items with cost records
- deduct_waste: default location, clamping, waste log
- optimistic versioning and atomic rollback
"""
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.db.models import F

from stock.models import StockItem, StockTransaction, WasteLog, CostRecord
from stock.services import (
    StockLedgerService, StockTransactionService,
    ValidationError, InvalidQuantityError, NotFoundError, BusinessRuleError,
    InsufficientStockError, ConcurrentModificationError, PersistenceError,
)
from stock.tests.base import LedgerTestCase, TENANT, OTHER_TENANT, ACTOR

Movement = StockTransaction.MovementType


# =============================================================================
# 1. Transfer
# =============================================================================

class TransferTests(LedgerTestCase):

    def setUp(self):
        self.stock(self.flour, self.loc_a, 10)
        self.stock(self.flour, self.loc_b, 5)

    def test_transfer_moves_quantity_between_locations(self):
        """Item at {A:10, B:5}; moving 3 from A to B leaves {A:7, B:8}."""
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 3, ACTOR)

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('7'))
        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('8'))

    def test_transfer_appends_cross_linked_pair(self):
        result = StockLedgerService.transfer(
            TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 3, ACTOR
        )

        out_leg = StockTransaction.objects.get(id=result['transfer_out']['id'])
        in_leg = StockTransaction.objects.get(id=result['transfer_in']['id'])

        self.assertEqual(out_leg.movement_type, Movement.TRANSFER_OUT)
        self.assertEqual(in_leg.movement_type, Movement.TRANSFER_IN)
        self.assertEqual(out_leg.quantity_change, Decimal('-3'))
        self.assertEqual(in_leg.quantity_change, Decimal('3'))
        self.assertEqual(out_leg.related_transaction_uuid, in_leg.uuid)
        self.assertEqual(in_leg.related_transaction_uuid, out_leg.uuid)
        self.assertEqual(out_leg.related_transaction, in_leg)
        self.assertEqual(out_leg.location, self.loc_a)
        self.assertEqual(in_leg.location, self.loc_b)
        self.assertEqual(out_leg.stock_item_id, in_leg.stock_item_id)

    def test_transfer_conserves_total(self):
        before = self.fresh(self.flour).total_quantity

        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 4, ACTOR)
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_b.id, self.loc_c.id, 9, ACTOR)

        self.assertEqual(self.fresh(self.flour).total_quantity, before)
        pairs = StockTransaction.objects.filter(
            movement_type__in=[Movement.TRANSFER_OUT, Movement.TRANSFER_IN]
        )
        self.assertEqual(sum(t.quantity_change for t in pairs), Decimal('0'))

    def test_transfer_to_empty_location_creates_level(self):
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_c.id, 2, ACTOR)
        self.assertEqual(self.level(self.flour, self.loc_c), Decimal('2'))

    def test_transfer_insufficient_stock_changes_nothing(self):
        """Moving more than the source holds fails with no state or ledger change."""
        ledger_count = StockTransaction.objects.count()
        version = self.fresh(self.flour).version

        with self.assertRaises(InsufficientStockError) as ctx:
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 11, ACTOR)

        self.assertEqual(Decimal(ctx.exception.details['available']), Decimal('10'))
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('10'))
        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('5'))
        self.assertEqual(StockTransaction.objects.count(), ledger_count)
        self.assertEqual(self.fresh(self.flour).version, version)

    def test_transfer_rejects_same_location(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_a.id, 1, ACTOR)

    def test_transfer_rejects_non_positive_quantity(self):
        for bad in (0, -2, 'abc', None, 'NaN'):
            with self.assertRaises(InvalidQuantityError):
                StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, bad, ACTOR)

    def test_transfer_requires_actor(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 1, '')

    def test_other_tenant_ids_are_not_found(self):
        with self.assertRaises(NotFoundError):
            StockLedgerService.transfer(TENANT, self.foreign_item.id, self.loc_a.id, self.loc_b.id, 1, ACTOR)
        with self.assertRaises(NotFoundError):
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.foreign_loc.id, 1, ACTOR)
        with self.assertRaises(NotFoundError):
            StockLedgerService.transfer(OTHER_TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 1, ACTOR)

    def test_inactive_location_cannot_receive_transfer(self):
        self.loc_c.is_active = False
        self.loc_c.save()
        with self.assertRaises(NotFoundError):
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_c.id, 1, ACTOR)


# =============================================================================
# 2. Manual adjust
# =============================================================================

class ManualAdjustTests(LedgerTestCase):

    def test_add_increments_and_records(self):
        result = StockLedgerService.manual_adjust(
            TENANT, self.butter.id, self.loc_a.id, '2.5', 'add', ACTOR, notes='found a box'
        )

        self.assertEqual(self.level(self.butter, self.loc_a), Decimal('2.5'))
        trans = StockTransaction.objects.get(id=result['transaction']['id'])
        self.assertEqual(trans.movement_type, Movement.MANUAL_ADD)
        self.assertEqual(trans.quantity_change, Decimal('2.5'))
        self.assertEqual(trans.notes, 'found a box')
        self.assertFalse(result['clamped'])

    def test_add_sets_default_location_on_first_stock(self):
        StockLedgerService.manual_adjust(TENANT, self.butter.id, self.loc_b.id, 1, 'add', ACTOR)
        self.assertEqual(self.fresh(self.butter).default_location, self.loc_b)

    def test_subtract_clamps_at_zero(self):
        """Quantity 5, subtract 8: level ends at 0 and the ledger records -5."""
        self.stock(self.butter, self.loc_a, 5)

        with self.assertLogs('stock.services.ledger_engine', level='WARNING'):
            result = StockLedgerService.manual_adjust(
                TENANT, self.butter.id, self.loc_a.id, 8, 'subtract', ACTOR
            )

        self.assertEqual(self.level(self.butter, self.loc_a), Decimal('0'))
        trans = StockTransaction.objects.get(id=result['transaction']['id'])
        self.assertEqual(trans.movement_type, Movement.MANUAL_SUBTRACT)
        self.assertEqual(trans.quantity_change, Decimal('-5'))
        self.assertEqual(trans.quantity_after, Decimal('0'))
        self.assertTrue(result['clamped'])
        self.assertEqual(Decimal(result['requested']), Decimal('8'))
        self.assertEqual(Decimal(result['applied']), Decimal('5'))
        self.assertIn('only 5', result['warning'])

    def test_subtract_within_stock_is_exact(self):
        self.stock(self.butter, self.loc_a, 5)
        result = StockLedgerService.manual_adjust(TENANT, self.butter.id, self.loc_a.id, 2, 'subtract', ACTOR)

        self.assertEqual(self.level(self.butter, self.loc_a), Decimal('3'))
        self.assertFalse(result['clamped'])
        self.assertIsNone(result['warning'])

    def test_subtract_from_empty_appends_nothing(self):
        count = StockTransaction.objects.count()
        result = StockLedgerService.manual_adjust(TENANT, self.butter.id, self.loc_a.id, 3, 'subtract', ACTOR)

        self.assertIsNone(result['transaction'])
        self.assertTrue(result['clamped'])
        self.assertEqual(StockTransaction.objects.count(), count)

    def test_clamped_ledger_matches_level_change(self):
        self.stock(self.butter, self.loc_a, 4)
        for requested in (1, 2, 7):
            before = self.level(self.butter, self.loc_a)
            result = StockLedgerService.manual_adjust(
                TENANT, self.butter.id, self.loc_a.id, requested, 'subtract', ACTOR
            )
            after = self.level(self.butter, self.loc_a)
            if result['transaction']:
                self.assertEqual(Decimal(result['transaction']['quantity_change']), after - before)
            else:
                self.assertEqual(after, before)

    def test_invalid_direction(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.manual_adjust(TENANT, self.butter.id, self.loc_a.id, 1, 'sideways', ACTOR)


# =============================================================================
# 3. Stock-take
# =============================================================================

class StockTakeTests(LedgerTestCase):

    def setUp(self):
        self.stock(self.flour, self.loc_a, 10)

    def test_matching_count_appends_nothing(self):
        count = StockTransaction.objects.count()
        result = StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 10, ACTOR)

        self.assertFalse(result['adjusted'])
        self.assertEqual(StockTransaction.objects.count(), count)
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('10'))

    def test_count_difference_is_booked(self):
        result = StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, '7.5', ACTOR)

        trans = StockTransaction.objects.get(id=result['transaction']['id'])
        self.assertEqual(trans.movement_type, Movement.STOCK_TAKE_ADJUSTMENT)
        self.assertEqual(trans.quantity_change, Decimal('-2.5'))
        self.assertEqual(trans.notes, 'Old: 10, New: 7.5')
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('7.5'))
        self.assertIsNotNone(self.fresh(self.flour).stock_levels.get(location=self.loc_a).last_counted_at)

    def test_repeated_count_is_idempotent(self):
        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 12, ACTOR)
        count = StockTransaction.objects.count()
        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 12, ACTOR)

        self.assertEqual(StockTransaction.objects.count(), count)
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('12'))

    def test_zero_count_allowed_negative_rejected(self):
        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 0, ACTOR)
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('0'))

        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, -1, ACTOR)

    def test_count_at_new_location(self):
        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_c.id, 3, ACTOR)
        self.assertEqual(self.level(self.flour, self.loc_c), Decimal('3'))

    def test_bulk_counts_are_independent(self):
        result = StockLedgerService.reconcile_stock_take_many(
            TENANT, self.loc_a.id,
            {self.flour.id: 10, self.butter.id: 4, self.foreign_item.id: 1},
            ACTOR,
        )

        self.assertEqual(result['unchanged_count'], 1)
        self.assertEqual(result['adjusted_count'], 1)
        self.assertEqual(result['failed_count'], 1)
        self.assertEqual(self.level(self.butter, self.loc_a), Decimal('4'))
        failed = [r for r in result['results'] if not r['success']]
        self.assertEqual(failed[0]['error']['code'], 'NOT_FOUND')


# =============================================================================
# 4. Receive
# =============================================================================

class ReceiveTests(LedgerTestCase):

    def test_receive_existing_item(self):
        self.stock(self.flour, self.loc_a, 3)
        result = StockLedgerService.receive(
            TENANT, self.loc_a.id, 7, ACTOR, stock_item_id=self.flour.id,
        )

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('10'))
        self.assertEqual(result['transaction']['movement_type'], Movement.RECEIPT)
        self.assertEqual(Decimal(result['transaction']['quantity_change']), Decimal('7'))
        self.assertFalse(result['created_item'])

    def test_receive_with_price_refreshes_cost_record(self):
        record = CostRecord.objects.create(tenant_id=TENANT, name='Flour', unit='kg', unit_price=1)
        StockItem.objects.filter(id=self.flour.id).update(cost_record=record)

        StockLedgerService.receive(
            TENANT, self.loc_a.id, 25, ACTOR, stock_item_id=self.flour.id,
            unit_price='1.35', unit='sack',
        )

        record.refresh_from_db()
        self.assertEqual(record.unit_price, Decimal('1.35'))
        self.assertEqual(record.unit, 'sack')

    def test_receive_with_price_creates_missing_cost_record(self):
        StockLedgerService.receive(
            TENANT, self.loc_a.id, 1, ACTOR, stock_item_id=self.butter.id, unit_price=8,
        )
        self.assertEqual(self.fresh(self.butter).cost_record.unit_price, Decimal('8'))

    def test_receive_new_item(self):
        """New 'Olive Oil' at C: one level {C, 20}, linked cost {L, 9}, one +20 receipt."""
        result = StockLedgerService.receive(
            TENANT, self.loc_c.id, 20, ACTOR,
            new_item={'name': 'Olive Oil', 'unit': 'L'}, unit_price=9,
        )

        item = StockItem.objects.get(id=result['stock_item']['id'])
        self.assertEqual(item.name, 'Olive Oil')
        self.assertEqual(item.locations, [{'location_id': self.loc_c.id, 'quantity': Decimal('20')}])
        self.assertEqual(item.default_location, self.loc_c)
        self.assertEqual(item.cost_record.unit, 'L')
        self.assertEqual(item.cost_record.unit_price, Decimal('9'))

        ledger = list(item.transactions.all())
        self.assertEqual(len(ledger), 1)
        self.assertEqual(ledger[0].movement_type, Movement.RECEIPT)
        self.assertEqual(ledger[0].quantity_change, Decimal('20'))

    def test_receive_requires_exactly_one_item_source(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.receive(TENANT, self.loc_a.id, 1, ACTOR)
        with self.assertRaises(ValidationError):
            StockLedgerService.receive(
                TENANT, self.loc_a.id, 1, ACTOR,
                stock_item_id=self.flour.id, new_item={'name': 'X', 'unit': 'kg'},
            )

    def test_receive_new_item_requires_name_and_unit(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.receive(TENANT, self.loc_a.id, 1, ACTOR, new_item={'name': 'Salt'})
        self.assertFalse(StockItem.objects.filter(name='Salt').exists())

    def test_receive_rejects_negative_price(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.receive(
                TENANT, self.loc_a.id, 1, ACTOR, stock_item_id=self.flour.id, unit_price=-1,
            )


# =============================================================================
# 5. Waste
# =============================================================================

class WasteTests(LedgerTestCase):

    def test_waste_uses_default_location(self):
        self.stock(self.flour, self.loc_b, 6)
        result = StockLedgerService.deduct_waste(
            TENANT, self.flour.id, 2, 'spoiled', ACTOR, notes='mould'
        )

        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('4'))
        trans = StockTransaction.objects.get(id=result['transaction']['id'])
        self.assertEqual(trans.movement_type, Movement.WASTE)
        self.assertEqual(trans.quantity_change, Decimal('-2'))
        self.assertEqual(trans.notes, 'Reason: spoiled. mould')

        log = WasteLog.objects.get(id=result['waste_log_id'])
        self.assertEqual(log.transaction, trans)
        self.assertEqual(log.applied_quantity, Decimal('2'))

    def test_waste_explicit_location(self):
        self.stock(self.flour, self.loc_a, 6)
        self.stock(self.flour, self.loc_b, 6)
        StockLedgerService.deduct_waste(
            TENANT, self.flour.id, 1, 'damaged', ACTOR, location_id=self.loc_b.id
        )
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('6'))
        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('5'))

    def test_waste_clamps_and_logs_requested(self):
        self.stock(self.flour, self.loc_a, 1)
        result = StockLedgerService.deduct_waste(TENANT, self.flour.id, 3, 'expired', ACTOR)

        self.assertTrue(result['clamped'])
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('0'))
        log = WasteLog.objects.get(id=result['waste_log_id'])
        self.assertEqual(log.requested_quantity, Decimal('3'))
        self.assertEqual(log.applied_quantity, Decimal('1'))
        self.assertEqual(log.transaction.quantity_change, Decimal('-1'))

    def test_waste_without_any_location(self):
        with self.assertRaises(BusinessRuleError):
            StockLedgerService.deduct_waste(TENANT, self.butter.id, 1, 'other', ACTOR)

    def test_waste_invalid_reason(self):
        self.stock(self.flour, self.loc_a, 1)
        with self.assertRaises(ValidationError):
            StockLedgerService.deduct_waste(TENANT, self.flour.id, 1, 'eaten', ACTOR)


# =============================================================================
# 6. Versioning and atomicity
# =============================================================================

class ConsistencyTests(LedgerTestCase):

    def test_every_change_bumps_version(self):
        self.stock(self.flour, self.loc_a, 5)
        v1 = self.fresh(self.flour).version
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 1, ACTOR)
        self.assertEqual(self.fresh(self.flour).version, v1 + 1)

        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 4, ACTOR)
        self.assertEqual(self.fresh(self.flour).version, v1 + 1)

    def test_stale_version_is_rejected(self):
        self.stock(self.flour, self.loc_a, 5)
        seen = self.fresh(self.flour).version
        StockLedgerService.manual_adjust(TENANT, self.flour.id, self.loc_a.id, 1, 'add', ACTOR)
        count = StockTransaction.objects.count()

        with self.assertRaises(ConcurrentModificationError):
            StockLedgerService.manual_adjust(
                TENANT, self.flour.id, self.loc_a.id, 1, 'subtract', ACTOR, expected_version=seen
            )

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('6'))
        self.assertEqual(StockTransaction.objects.count(), count)

    def test_current_version_is_accepted(self):
        self.stock(self.flour, self.loc_a, 5)
        current = self.fresh(self.flour).version
        result = StockLedgerService.manual_adjust(
            TENANT, self.flour.id, self.loc_a.id, 1, 'subtract', ACTOR, expected_version=current
        )
        self.assertEqual(result['stock_item']['version'], current + 1)

    def test_ledger_failure_rolls_back_level(self):
        self.stock(self.flour, self.loc_a, 10)
        count = StockTransaction.objects.count()

        with mock.patch.object(StockLedgerService, '_append', side_effect=DatabaseError('disk full')):
            with self.assertLogs('stock.services.ledger_engine', level='ERROR'):
                with self.assertRaises(PersistenceError):
                    StockLedgerService.transfer(
                        TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 4, ACTOR
                    )

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('10'))
        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('0'))
        self.assertEqual(StockTransaction.objects.count(), count)

    def test_ledger_replays_to_levels(self):
        self.stock(self.flour, self.loc_a, 10)
        StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 3, ACTOR)
        StockLedgerService.manual_adjust(TENANT, self.flour.id, self.loc_b.id, 9, 'subtract', ACTOR)
        StockLedgerService.reconcile_stock_take(TENANT, self.flour.id, self.loc_a.id, 6, ACTOR)
        StockLedgerService.deduct_waste(TENANT, self.flour.id, 1, 'other', ACTOR)

        result = StockTransactionService.verify(TENANT, self.flour.id)
        self.assertTrue(result['consistent'])
        self.assertEqual(result['mismatches'], [])

    def test_levels_never_negative(self):
        self.stock(self.flour, self.loc_a, 2)
        operations = [
            lambda: StockLedgerService.manual_adjust(TENANT, self.flour.id, self.loc_a.id, 5, 'subtract', ACTOR),
            lambda: StockLedgerService.deduct_waste(TENANT, self.flour.id, 5, 'other', ACTOR),
            lambda: StockLedgerService.transfer(TENANT, self.flour.id, self.loc_a.id, self.loc_b.id, 1, ACTOR),
        ]
        for operation in operations:
            try:
                operation()
            except InsufficientStockError:
                pass
            for level in self.fresh(self.flour).stock_levels.all():
                self.assertGreaterEqual(level.quantity, Decimal('0'))

    def test_version_bumped_after_lock_is_rejected(self):
        self.stock(self.flour, self.loc_a, 5)
        count = StockTransaction.objects.count()
        lock_item = StockLedgerService._lock_item.__func__

        def lock_then_race(cls, *args, **kwargs):
            item = lock_item(cls, *args, **kwargs)
            # another writer commits between our read and our write
            StockItem.objects.filter(id=item.id).update(version=F('version') + 1)
            return item

        with mock.patch.object(StockLedgerService, '_lock_item', classmethod(lock_then_race)):
            with self.assertRaises(ConcurrentModificationError):
                StockLedgerService.manual_adjust(
                    TENANT, self.flour.id, self.loc_a.id, 2, 'subtract', ACTOR
                )

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('5'))
        self.assertEqual(StockTransaction.objects.count(), count)


class QuantityBoundsTests(LedgerTestCase):

    def test_quantity_beyond_decimal_precision(self):
        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.manual_adjust(TENANT, self.flour.id, self.loc_a.id, '1e30', 'add', ACTOR)
        self.assertFalse(StockTransaction.objects.exists())

    def test_quantity_beyond_column_size(self):
        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.manual_adjust(
                TENANT, self.flour.id, self.loc_a.id, '1000000000000', 'add', ACTOR
            )
        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.receive(
                TENANT, self.loc_a.id, '1000000000000', ACTOR, stock_item_id=self.flour.id
            )
        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('0'))

    def test_level_pushed_past_column_size(self):
        self.stock(self.flour, self.loc_a, '99999999999')
        self.stock(self.flour, self.loc_b, 5)
        version = self.fresh(self.flour).version
        count = StockTransaction.objects.count()

        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.manual_adjust(TENANT, self.flour.id, self.loc_a.id, 1, 'add', ACTOR)
        with self.assertRaises(InvalidQuantityError):
            StockLedgerService.transfer(TENANT, self.flour.id, self.loc_b.id, self.loc_a.id, 5, ACTOR)

        self.assertEqual(self.level(self.flour, self.loc_a), Decimal('99999999999'))
        self.assertEqual(self.level(self.flour, self.loc_b), Decimal('5'))
        self.assertEqual(self.fresh(self.flour).version, version)
        self.assertEqual(StockTransaction.objects.count(), count)

    def test_oversize_unit_price(self):
        with self.assertRaises(ValidationError):
            StockLedgerService.receive(
                TENANT, self.loc_a.id, 1, ACTOR, stock_item_id=self.flour.id, unit_price='1e30'
            )

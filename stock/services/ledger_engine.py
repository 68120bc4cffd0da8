import logging
import uuid as uuid_lib
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional

from django.db import transaction, DatabaseError
from django.db.models import F
from django.utils import timezone

from stock.models import (
    Location, StockItem, StockLevel, StockTransaction, WasteLog, InvoiceImport
)
from stock.services.base_service import (
    success_response, ServiceError,
    ValidationError, NotFoundError, BusinessRuleError, InsufficientStockError,
    ConcurrentModificationError, InvalidQuantityError, PersistenceError,
    MAX_STORED_QUANTITY, parse_quantity, require_tenant, round_decimal, to_decimal
)
from stock.services.cost_service import CostRecordService
from stock.services.location_service import LocationService
from stock.services.ledger_service import StockTransactionService

logger = logging.getLogger(__name__)

MovementType = StockTransaction.MovementType


def format_quantity(value: Decimal) -> str:
    """Render a quantity without trailing zeros (10.5000 -> 10.5)."""
    value = value.normalize()
    return format(value, "f")


class StockLedgerService:
    """
    The only writer of stock levels.

    Each operation locks the item, validates against the current levels,
    writes the new levels and appends the matching ledger rows inside one
    database transaction.
    """

    @staticmethod
    @contextmanager
    def ledger_command(operation: str):
        try:
            with transaction.atomic():
                yield
        except DatabaseError as exc:
            logger.exception("Ledger write failed", extra={"operation": operation})
            raise PersistenceError(operation, exc) from exc

    @classmethod
    def require_actor(cls, actor_id: Any) -> str:
        actor_id = str(actor_id or "").strip()
        if not actor_id:
            raise ValidationError("Actor id is required", "actor_id")
        return actor_id

    @classmethod
    def _lock_item(cls, tenant_id: str, stock_item_id: int,
                   expected_version: Optional[int] = None) -> StockItem:
        try:
            item = StockItem.objects.select_for_update().get(
                tenant_id=tenant_id, id=stock_item_id, is_active=True
            )
        except (StockItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock item", stock_item_id)

        if expected_version is not None:
            try:
                expected = int(expected_version)
            except (ValueError, TypeError):
                raise ValidationError(f"Invalid version: {expected_version}", "expected_version")
            if expected != item.version:
                logger.info(
                    "Stale version rejected",
                    extra={"stock_item_id": item.id, "expected_version": expected,
                           "current_version": item.version},
                )
                raise ConcurrentModificationError(item.name, expected, item.version)
        return item

    @classmethod
    def _current_level(cls, item: StockItem, location: Location) -> Optional[StockLevel]:
        return StockLevel.objects.select_for_update().filter(
            stock_item=item, location=location
        ).first()

    @classmethod
    def _claim_version(cls, item: StockItem):
        """Compare-and-swap on the item version before anything is written."""
        updated = StockItem.objects.filter(id=item.id, version=item.version).update(
            version=F("version") + 1, updated_at=timezone.now()
        )
        if updated != 1:
            current = StockItem.objects.filter(id=item.id).values_list("version", flat=True).first()
            raise ConcurrentModificationError(item.name, item.version, current)
        item.version += 1

    @classmethod
    def _write_level(cls, item: StockItem, location: Location, level: Optional[StockLevel],
                     quantity: Decimal, now: datetime, restocked: bool = False,
                     counted: bool = False) -> StockLevel:
        if quantity < 0:
            raise BusinessRuleError(
                f"Stock level of {item.name} cannot go below zero", "non_negative_stock"
            )
        if quantity > MAX_STORED_QUANTITY:
            raise InvalidQuantityError(
                format_quantity(quantity), "quantity",
                f"{item.name} at {location.name} would exceed {MAX_STORED_QUANTITY}",
            )

        if level is None:
            level = StockLevel(stock_item=item, location=location)

        level.quantity = quantity
        level.last_movement_at = now
        if restocked:
            level.last_restocked_at = now
        if counted:
            level.last_counted_at = now
        level.save()

        if item.default_location_id is None:
            item.default_location = location
            item.save(update_fields=["default_location", "updated_at"])

        return level

    @classmethod
    def _append(cls, item: StockItem, location: Location, movement_type: str,
                before: Decimal, after: Decimal, actor_id: str, now: datetime,
                notes: str = "", uuid: uuid_lib.UUID = None,
                related_uuid: uuid_lib.UUID = None,
                import_batch: InvoiceImport = None) -> StockTransaction:
        return StockTransaction.objects.create(
            uuid=uuid or uuid_lib.uuid4(),
            tenant_id=item.tenant_id,
            stock_item=item,
            location=location,
            movement_type=movement_type,
            quantity_change=after - before,
            quantity_before=before,
            quantity_after=after,
            related_transaction_uuid=related_uuid,
            import_batch=import_batch,
            actor_id=actor_id,
            notes=notes or "",
            created_at=now,
        )

    @classmethod
    def _item_payload(cls, item: StockItem) -> Dict[str, Any]:
        from .item_service import StockItemService
        return StockItemService.serialize(StockItem.objects.get(id=item.id))

    @classmethod
    def record_opening_balance(cls, item: StockItem, location: Location,
                               quantity: Decimal, actor_id: str) -> StockTransaction:
        """Book the starting quantity of a freshly created item."""
        now = timezone.now()
        cls._claim_version(item)
        cls._write_level(item, location, None, quantity, now, restocked=True)
        return cls._append(
            item, location, MovementType.INITIAL, Decimal("0"), quantity,
            actor_id, now, notes="Opening balance",
        )

    @classmethod
    def transfer(cls,
                 tenant_id: str,
                 stock_item_id: int,
                 from_location_id: int,
                 to_location_id: int,
                 quantity: Any,
                 actor_id: str,
                 notes: str = "",
                 expected_version: int = None) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        actor_id = cls.require_actor(actor_id)
        quantity = parse_quantity(quantity)

        if str(from_location_id) == str(to_location_id):
            raise ValidationError("Source and destination must differ", "to_location_id")

        with cls.ledger_command("transfer"):
            source = LocationService.get_active(tenant_id, from_location_id)
            destination = LocationService.get_active(tenant_id, to_location_id)
            item = cls._lock_item(tenant_id, stock_item_id, expected_version)

            source_level = cls._current_level(item, source)
            available = source_level.quantity if source_level else Decimal("0")
            if available < quantity:
                logger.info(
                    "Transfer rejected: insufficient stock",
                    extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                           "location_id": source.id, "required": str(quantity),
                           "available": str(available)},
                )
                raise InsufficientStockError(item.name, quantity, available)

            dest_level = cls._current_level(item, destination)
            dest_before = dest_level.quantity if dest_level else Decimal("0")

            cls._claim_version(item)
            now = timezone.now()
            cls._write_level(item, source, source_level, available - quantity, now)
            cls._write_level(item, destination, dest_level, dest_before + quantity, now,
                             restocked=True)

            out_uuid, in_uuid = uuid_lib.uuid4(), uuid_lib.uuid4()
            out_trans = cls._append(
                item, source, MovementType.TRANSFER_OUT, available, available - quantity,
                actor_id, now, notes=notes or f"Transfer to {destination.name}",
                uuid=out_uuid, related_uuid=in_uuid,
            )
            in_trans = cls._append(
                item, destination, MovementType.TRANSFER_IN, dest_before, dest_before + quantity,
                actor_id, now, notes=notes or f"Transfer from {source.name}",
                uuid=in_uuid, related_uuid=out_uuid,
            )

        logger.info(
            "Stock transferred",
            extra={"tenant_id": tenant_id, "stock_item_id": item.id, "quantity": str(quantity),
                   "from_location_id": source.id, "to_location_id": destination.id},
        )

        return success_response({
            "stock_item": cls._item_payload(item),
            "transfer_out": StockTransactionService.serialize(out_trans),
            "transfer_in": StockTransactionService.serialize(in_trans),
        }, f"Transferred {format_quantity(quantity)} {item.unit} of {item.name}")

    @classmethod
    def manual_adjust(cls,
                      tenant_id: str,
                      stock_item_id: int,
                      location_id: int,
                      quantity: Any,
                      direction: str,
                      actor_id: str,
                      notes: str = "",
                      expected_version: int = None) -> Dict[str, Any]:
        """
        Add to or subtract from one location.

        Subtraction clamps at zero: the ledger records what was actually
        removed and the result carries a warning instead of failing.
        """
        tenant_id = require_tenant(tenant_id)
        actor_id = cls.require_actor(actor_id)
        quantity = parse_quantity(quantity)

        if direction not in ("add", "subtract"):
            raise ValidationError("Direction must be 'add' or 'subtract'", "direction")

        with cls.ledger_command("manual_adjust"):
            location = LocationService.get_active(tenant_id, location_id)
            item = cls._lock_item(tenant_id, stock_item_id, expected_version)

            level = cls._current_level(item, location)
            before = level.quantity if level else Decimal("0")

            if direction == "add":
                applied = quantity
                after = before + quantity
                movement_type = MovementType.MANUAL_ADD
            else:
                applied = min(quantity, before)
                after = before - applied
                movement_type = MovementType.MANUAL_SUBTRACT

            trans = None
            if applied > 0:
                cls._claim_version(item)
                now = timezone.now()
                cls._write_level(item, location, level, after, now,
                                 restocked=direction == "add")
                trans = cls._append(item, location, movement_type, before, after,
                                    actor_id, now, notes=notes)

        clamped = applied < quantity
        warning = None
        if clamped:
            warning = (
                f"Requested {format_quantity(quantity)} but only "
                f"{format_quantity(applied)} {item.unit} was available at {location.name}"
            )
            logger.warning(
                "Subtraction clamped at zero",
                extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                       "location_id": location.id, "requested": str(quantity),
                       "applied": str(applied)},
            )
        else:
            logger.info(
                "Stock adjusted",
                extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                       "location_id": location.id, "direction": direction,
                       "quantity": str(applied)},
            )

        return success_response({
            "stock_item": cls._item_payload(item),
            "transaction": StockTransactionService.serialize(trans) if trans else None,
            "requested": str(quantity),
            "applied": str(applied),
            "clamped": clamped,
            "warning": warning,
            "quantity_before": str(before),
            "quantity_after": str(after),
        }, warning or f"Stock adjusted: {after - before:+} {item.unit}")

    @classmethod
    def reconcile_stock_take(cls,
                             tenant_id: str,
                             stock_item_id: int,
                             location_id: int,
                             counted_quantity: Any,
                             actor_id: str,
                             expected_version: int = None) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        actor_id = cls.require_actor(actor_id)
        counted = parse_quantity(counted_quantity, "counted_quantity", allow_zero=True)

        with cls.ledger_command("reconcile_stock_take"):
            location = LocationService.get_active(tenant_id, location_id)
            item = cls._lock_item(tenant_id, stock_item_id, expected_version)

            level = cls._current_level(item, location)
            before = level.quantity if level else Decimal("0")
            difference = counted - before
            now = timezone.now()

            trans = None
            if difference == 0:
                if level is not None:
                    level.last_counted_at = now
                    level.save(update_fields=["last_counted_at", "updated_at"])
            else:
                cls._claim_version(item)
                cls._write_level(item, location, level, counted, now, counted=True)
                trans = cls._append(
                    item, location, MovementType.STOCK_TAKE_ADJUSTMENT, before, counted,
                    actor_id, now,
                    notes=f"Old: {format_quantity(before)}, New: {format_quantity(counted)}",
                )

        if trans:
            logger.info(
                "Stock-take adjusted",
                extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                       "location_id": location.id, "difference": str(difference)},
            )

        return success_response({
            "stock_item": cls._item_payload(item),
            "transaction": StockTransactionService.serialize(trans) if trans else None,
            "adjusted": trans is not None,
            "quantity_before": str(before),
            "counted_quantity": str(counted),
            "difference": str(difference),
        }, "Stock-take recorded" if trans else "Count matches recorded stock")

    @classmethod
    def reconcile_stock_take_many(cls,
                                  tenant_id: str,
                                  location_id: int,
                                  counts: Dict[Any, Any],
                                  actor_id: str) -> Dict[str, Any]:
        """Stock-take of several items at one location, one command per item."""
        if not counts:
            raise ValidationError("At least one count is required", "counts")

        results = []
        adjusted = unchanged = failed = 0

        for stock_item_id, counted in counts.items():
            try:
                result = cls.reconcile_stock_take(
                    tenant_id, stock_item_id, location_id, counted, actor_id
                )
            except ServiceError as e:
                failed += 1
                results.append({
                    "stock_item_id": stock_item_id,
                    "success": False,
                    "error": {"code": e.code, "message": e.message, "details": e.details},
                })
                continue

            if result["adjusted"]:
                adjusted += 1
            else:
                unchanged += 1
            results.append({
                "stock_item_id": stock_item_id,
                "success": True,
                "adjusted": result["adjusted"],
                "difference": result["difference"],
                "transaction": result["transaction"],
            })

        return success_response({
            "results": results,
            "adjusted_count": adjusted,
            "unchanged_count": unchanged,
            "failed_count": failed,
        }, f"Stock-take: {adjusted} adjusted, {unchanged} unchanged, {failed} failed")

    @classmethod
    def _parse_price(cls, unit_price: Any) -> Optional[Decimal]:
        if unit_price is None or unit_price == "":
            return None
        price = to_decimal(unit_price, default=None)
        if price is None or not price.is_finite() or not 0 <= price <= MAX_STORED_QUANTITY:
            raise ValidationError(f"Invalid unit price: {unit_price}", "unit_price")
        return round_decimal(price)

    @classmethod
    def _create_item(cls, tenant_id: str, new_item: Dict[str, Any],
                     location: Location, unit_price: Optional[Decimal]) -> StockItem:
        name = str(new_item.get("name") or "").strip()
        unit = str(new_item.get("unit") or "").strip()
        if not name:
            raise ValidationError("New item name is required", "name")
        if not unit:
            raise ValidationError("New item unit is required", "unit")

        reorder_point = new_item.get("reorder_point")
        reorder_point = (
            parse_quantity(reorder_point, "reorder_point", allow_zero=True)
            if reorder_point not in (None, "") else Decimal("0")
        )

        item = StockItem.objects.create(
            tenant_id=tenant_id,
            name=name,
            unit=unit,
            reorder_point=reorder_point,
            default_location=location,
        )
        CostRecordService.create_for_item(item, unit_price or Decimal("0"), unit)
        return item

    @classmethod
    def receive(cls,
                tenant_id: str,
                location_id: int,
                quantity: Any,
                actor_id: str,
                stock_item_id: int = None,
                new_item: Dict[str, Any] = None,
                unit_price: Any = None,
                unit: str = None,
                occurred_at: datetime = None,
                import_batch: InvoiceImport = None,
                notes: str = "",
                expected_version: int = None) -> Dict[str, Any]:
        """
        Book delivered goods into a location.

        Either ``stock_item_id`` names an existing item, or ``new_item``
        (name, unit, optional reorder_point) describes one to create along
        with its cost record.
        """
        tenant_id = require_tenant(tenant_id)
        actor_id = cls.require_actor(actor_id)
        quantity = parse_quantity(quantity)
        price = cls._parse_price(unit_price)

        if bool(stock_item_id) == bool(new_item):
            raise ValidationError(
                "Provide either stock_item_id or new_item", "stock_item_id"
            )

        with cls.ledger_command("receive"):
            location = LocationService.get_active(tenant_id, location_id)

            if new_item:
                item = cls._create_item(tenant_id, new_item, location, price)
                level = None
            else:
                item = cls._lock_item(tenant_id, stock_item_id, expected_version)
                level = cls._current_level(item, location)

            before = level.quantity if level else Decimal("0")
            after = before + quantity

            cls._claim_version(item)
            now = occurred_at or timezone.now()
            cls._write_level(item, location, level, after, now, restocked=True)
            trans = cls._append(
                item, location, MovementType.RECEIPT, before, after, actor_id, now,
                notes=notes, import_batch=import_batch,
            )

            if not new_item and price is not None:
                CostRecordService.refresh(item, price, unit)

        logger.info(
            "Stock received",
            extra={"tenant_id": tenant_id, "stock_item_id": item.id, "location_id": location.id,
                   "quantity": str(quantity), "created_item": bool(new_item)},
        )

        return success_response({
            "stock_item": cls._item_payload(item),
            "transaction": StockTransactionService.serialize(trans),
            "created_item": bool(new_item),
        }, f"Received {format_quantity(quantity)} {item.unit} of {item.name}")

    @classmethod
    def deduct_waste(cls,
                     tenant_id: str,
                     stock_item_id: int,
                     quantity: Any,
                     reason: str,
                     actor_id: str,
                     notes: str = "",
                     location_id: int = None,
                     expected_version: int = None) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        actor_id = cls.require_actor(actor_id)
        quantity = parse_quantity(quantity)

        if reason not in WasteLog.Reason.values:
            raise ValidationError(
                f"Invalid reason. Valid: {WasteLog.Reason.values}", "reason"
            )

        with cls.ledger_command("deduct_waste"):
            item = cls._lock_item(tenant_id, stock_item_id, expected_version)

            if location_id:
                location = LocationService.get_active(tenant_id, location_id)
            elif item.default_location_id:
                location = LocationService.get_active(tenant_id, item.default_location_id)
            else:
                raise BusinessRuleError(
                    f"{item.name} has no stock location to deduct waste from",
                    "no_default_location",
                )

            level = cls._current_level(item, location)
            before = level.quantity if level else Decimal("0")
            applied = min(quantity, before)
            after = before - applied
            now = timezone.now()

            trans = None
            if applied > 0:
                cls._claim_version(item)
                cls._write_level(item, location, level, after, now)
                trans = cls._append(
                    item, location, MovementType.WASTE, before, after, actor_id, now,
                    notes=f"Reason: {reason}. {notes}".strip(),
                )

            waste_log = WasteLog.objects.create(
                tenant_id=tenant_id,
                stock_item=item,
                location=location,
                requested_quantity=quantity,
                applied_quantity=applied,
                reason=reason,
                notes=notes or "",
                actor_id=actor_id,
                transaction=trans,
                created_at=now,
            )

        clamped = applied < quantity
        warning = None
        if clamped:
            warning = (
                f"Requested {format_quantity(quantity)} but only "
                f"{format_quantity(applied)} {item.unit} was available at {location.name}"
            )
            logger.warning(
                "Waste clamped at zero",
                extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                       "location_id": location.id, "requested": str(quantity),
                       "applied": str(applied)},
            )
        else:
            logger.info(
                "Waste recorded",
                extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                       "location_id": location.id, "quantity": str(applied), "reason": reason},
            )

        return success_response({
            "stock_item": cls._item_payload(item),
            "transaction": StockTransactionService.serialize(trans) if trans else None,
            "waste_log_id": waste_log.id,
            "requested": str(quantity),
            "applied": str(applied),
            "clamped": clamped,
            "warning": warning,
        }, warning or f"Waste recorded: {format_quantity(applied)} {item.unit} of {item.name}")

import logging
from typing import Dict, Any
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Sum, F, Value, DecimalField
from django.db.models.functions import Coalesce

from stock.models import StockItem, StockLevel
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError,
    parse_quantity, require_tenant
)
from stock.services.cost_service import CostRecordService
from stock.services.location_service import LocationService

logger = logging.getLogger(__name__)


class StockItemService(BaseService):
    model = StockItem

    @classmethod
    def serialize(cls, item: StockItem, include_levels: bool = True) -> Dict[str, Any]:
        total = item.total_quantity
        data = {
            "id": item.id,
            "uuid": str(item.uuid),
            "tenant_id": item.tenant_id,
            "name": item.name,
            "unit": item.unit,
            "reorder_point": str(item.reorder_point),
            "default_location_id": item.default_location_id,
            "version": item.version,
            "total_quantity": str(total),
            "is_low_stock": total <= item.reorder_point,
            "is_active": item.is_active,
            "cost_record": (
                CostRecordService.serialize(item.cost_record) if item.cost_record else None
            ),
            "created_at": item.created_at.isoformat(),
            "updated_at": item.updated_at.isoformat(),
        }

        if include_levels:
            data["locations"] = [
                {
                    "location_id": level.location_id,
                    "location_name": level.location.name,
                    "quantity": str(level.quantity),
                    "last_counted_at": level.last_counted_at.isoformat() if level.last_counted_at else None,
                    "last_movement_at": level.last_movement_at.isoformat() if level.last_movement_at else None,
                }
                for level in item.stock_levels.all()
            ]

        return data

    @classmethod
    def _queryset(cls, tenant_id: str):
        return cls.scoped(tenant_id).select_related("cost_record").prefetch_related(
            "stock_levels", "stock_levels__location"
        )

    @classmethod
    def _with_totals(cls, queryset):
        return queryset.annotate(
            total_qty=Coalesce(
                Sum("stock_levels__quantity"),
                Value(Decimal("0")),
                output_field=DecimalField(max_digits=15, decimal_places=4),
            )
        )

    @classmethod
    def total_quantity(cls, tenant_id: str, item_id: int) -> Decimal:
        return cls.get_or_404(tenant_id, item_id, "Stock item").total_quantity

    @classmethod
    def is_low_stock(cls, tenant_id: str, item_id: int) -> bool:
        return cls.get_or_404(tenant_id, item_id, "Stock item").is_low_stock

    @classmethod
    def list(cls,
             tenant_id: str,
             page: int = 1,
             per_page: int = 20,
             search: str = None,
             low_stock_only: bool = False,
             location_id: int = None,
             active_only: bool = True) -> Dict[str, Any]:
        queryset = cls._queryset(tenant_id)

        if active_only:
            queryset = queryset.filter(is_active=True)

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(unit__iexact=search)
            )

        if location_id:
            queryset = queryset.filter(
                id__in=StockLevel.objects.filter(location_id=location_id).values("stock_item_id")
            )

        if low_stock_only:
            queryset = cls._with_totals(queryset).filter(total_qty__lte=F("reorder_point"))

        queryset = queryset.order_by("name", "id")

        items, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "items": [cls.serialize(item) for item in items],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, tenant_id: str, item_id: int) -> Dict[str, Any]:
        try:
            item = cls._queryset(tenant_id).get(id=item_id)
        except (StockItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock item", item_id)

        return success_response({
            "item": cls.serialize(item)
        })

    @classmethod
    def get_low_stock(cls, tenant_id: str) -> Dict[str, Any]:
        items = cls._with_totals(
            cls.scoped(tenant_id).filter(is_active=True)
        ).filter(total_qty__lte=F("reorder_point")).order_by("name", "id")

        alerts = [
            {
                "stock_item_id": item.id,
                "stock_item_name": item.name,
                "unit": item.unit,
                "current_quantity": str(item.total_qty),
                "reorder_point": str(item.reorder_point),
                "shortage": str(item.reorder_point - item.total_qty),
            }
            for item in items
        ]

        return success_response({
            "alerts": alerts,
            "count": len(alerts)
        })

    @classmethod
    def _clean_text(cls, value: str, field: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValidationError(f"{field.replace('_', ' ').capitalize()} is required", field)
        return value

    @classmethod
    def create(cls,
               tenant_id: str,
               name: str,
               unit: str,
               actor_id: str = None,
               reorder_point: Any = None,
               default_location_id: int = None,
               initial_quantity: Any = None) -> Dict[str, Any]:
        """
        Register an item by hand.

        A positive ``initial_quantity`` is booked at the default location as
        an opening-balance ledger entry, so a default location is required
        in that case.
        """
        from .ledger_engine import StockLedgerService

        tenant_id = require_tenant(tenant_id)
        name = cls._clean_text(name, "name")
        unit = cls._clean_text(unit, "unit")
        reorder_point = (
            parse_quantity(reorder_point, "reorder_point", allow_zero=True)
            if reorder_point not in (None, "") else Decimal("0")
        )

        opening = None
        if initial_quantity not in (None, ""):
            opening = parse_quantity(initial_quantity, "initial_quantity", allow_zero=True)
            if opening == 0:
                opening = None

        if opening is not None:
            actor_id = StockLedgerService.require_actor(actor_id)
            if not default_location_id:
                raise ValidationError(
                    "A default location is required to book an initial quantity",
                    "default_location_id",
                )

        with StockLedgerService.ledger_command("create_item"):
            location = None
            if default_location_id:
                location = LocationService.get_active(tenant_id, default_location_id)

            item = cls.model.objects.create(
                tenant_id=tenant_id,
                name=name,
                unit=unit,
                reorder_point=reorder_point,
                default_location=location,
            )

            if opening is not None:
                StockLedgerService.record_opening_balance(item, location, opening, actor_id)

        logger.info(
            "Stock item created",
            extra={"tenant_id": tenant_id, "stock_item_id": item.id,
                   "initial_quantity": str(opening or 0)},
        )

        return success_response({
            "id": item.id,
            "uuid": str(item.uuid),
            "item": cls.serialize(cls._queryset(tenant_id).get(id=item.id))
        }, f"Stock item '{name}' created")

    @classmethod
    @transaction.atomic
    def update(cls, tenant_id: str, item_id: int, **kwargs) -> Dict[str, Any]:
        """Change descriptive fields. Quantities only move through the ledger engine."""
        item = cls.get_or_404(tenant_id, item_id, "Stock item")

        update_fields = ["updated_at"]

        if "name" in kwargs:
            item.name = cls._clean_text(kwargs["name"], "name")
            update_fields.append("name")

        if "unit" in kwargs:
            item.unit = cls._clean_text(kwargs["unit"], "unit")
            update_fields.append("unit")

        if "reorder_point" in kwargs:
            item.reorder_point = parse_quantity(
                kwargs["reorder_point"], "reorder_point", allow_zero=True
            )
            update_fields.append("reorder_point")

        if "default_location_id" in kwargs:
            location_id = kwargs["default_location_id"]
            item.default_location = (
                LocationService.get_active(tenant_id, location_id) if location_id else None
            )
            update_fields.append("default_location")

        item.save(update_fields=update_fields)

        return success_response({
            "item": cls.serialize(cls._queryset(tenant_id).get(id=item.id))
        }, "Stock item updated")

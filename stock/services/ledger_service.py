from typing import Dict, Any
from decimal import Decimal
from datetime import date

from django.conf import settings
from django.db.models import Sum

from stock.models import StockTransaction, StockLevel, StockItem
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError
)


class StockTransactionService(BaseService):
    """Read side of the append-only ledger."""

    model = StockTransaction

    @classmethod
    def serialize(cls, trans: StockTransaction) -> Dict[str, Any]:
        return {
            "id": trans.id,
            "uuid": str(trans.uuid),
            "tenant_id": trans.tenant_id,
            "stock_item_id": trans.stock_item_id,
            "location_id": trans.location_id,
            "movement_type": trans.movement_type,
            "movement_type_display": trans.get_movement_type_display(),
            "quantity_change": str(trans.quantity_change),
            "quantity_before": str(trans.quantity_before),
            "quantity_after": str(trans.quantity_after),
            "related_transaction_uuid": (
                str(trans.related_transaction_uuid) if trans.related_transaction_uuid else None
            ),
            "import_batch_id": trans.import_batch_id,
            "actor_id": trans.actor_id,
            "notes": trans.notes,
            "created_at": trans.created_at.isoformat(),
        }

    @classmethod
    def _validate_movement_type(cls, movement_type: str):
        if movement_type not in StockTransaction.MovementType.values:
            raise ValidationError(
                f"Invalid movement type. Valid: {StockTransaction.MovementType.values}",
                "movement_type",
            )

    @classmethod
    def history(cls,
                tenant_id: str,
                stock_item_id: int,
                location_id: int = None,
                movement_type: str = None) -> Dict[str, Any]:
        """All ledger entries of one item, oldest first."""
        if not StockItem.objects.filter(tenant_id=tenant_id, id=stock_item_id).exists():
            raise NotFoundError("Stock item", stock_item_id)

        queryset = cls.scoped(tenant_id).filter(stock_item_id=stock_item_id)

        if location_id:
            queryset = queryset.filter(location_id=location_id)

        if movement_type:
            cls._validate_movement_type(movement_type)
            queryset = queryset.filter(movement_type=movement_type)

        transactions = list(queryset.order_by("created_at", "id"))
        net_change = sum((t.quantity_change for t in transactions), Decimal("0"))

        return success_response({
            "stock_item_id": stock_item_id,
            "transactions": [cls.serialize(t) for t in transactions],
            "count": len(transactions),
            "net_change": str(net_change),
        })

    @classmethod
    def list(cls,
             tenant_id: str,
             stock_item_id: int = None,
             location_id: int = None,
             movement_type: str = None,
             date_from: date = None,
             date_to: date = None,
             page: int = 1,
             per_page: int = None) -> Dict[str, Any]:
        queryset = cls.scoped(tenant_id)

        if stock_item_id:
            queryset = queryset.filter(stock_item_id=stock_item_id)

        if location_id:
            queryset = queryset.filter(location_id=location_id)

        if movement_type:
            cls._validate_movement_type(movement_type)
            queryset = queryset.filter(movement_type=movement_type)

        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)

        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)

        queryset = queryset.order_by("-created_at", "-id")

        per_page = per_page or settings.STOCK_LEDGER["HISTORY_PAGE_SIZE"]
        transactions, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "transactions": [cls.serialize(t) for t in transactions],
            "pagination": pagination,
            "movement_types": [
                {"value": c[0], "label": c[1]}
                for c in StockTransaction.MovementType.choices
            ]
        })

    @classmethod
    def verify(cls, tenant_id: str, stock_item_id: int) -> Dict[str, Any]:
        """
        Replay the ledger of an item and compare it with the current levels.

        Every location's level must equal the sum of the quantity changes
        booked against it.
        """
        if not StockItem.objects.filter(tenant_id=tenant_id, id=stock_item_id).exists():
            raise NotFoundError("Stock item", stock_item_id)

        booked = {
            row["location_id"]: row["total"] or Decimal("0")
            for row in cls.scoped(tenant_id)
            .filter(stock_item_id=stock_item_id)
            .values("location_id")
            .annotate(total=Sum("quantity_change"))
            .order_by()
        }
        current = {
            row["location_id"]: row["quantity"]
            for row in StockLevel.objects.filter(stock_item_id=stock_item_id)
            .values("location_id", "quantity")
        }

        mismatches = []
        for location_id in sorted(set(booked) | set(current)):
            ledger_qty = booked.get(location_id, Decimal("0"))
            level_qty = current.get(location_id, Decimal("0"))
            if ledger_qty != level_qty:
                mismatches.append({
                    "location_id": location_id,
                    "ledger_quantity": str(ledger_qty),
                    "level_quantity": str(level_qty),
                })

        return success_response({
            "stock_item_id": stock_item_id,
            "consistent": not mismatches,
            "mismatches": mismatches,
        }, "Ledger matches stock levels" if not mismatches else "Ledger and stock levels disagree")

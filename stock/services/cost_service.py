import logging
from decimal import Decimal
from typing import Dict, Any

from stock.models import CostRecord, StockItem
from stock.services.base_service import BaseService, ValidationError, round_decimal

logger = logging.getLogger(__name__)


class CostRecordService(BaseService):
    model = CostRecord

    @classmethod
    def serialize(cls, record: CostRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "uuid": str(record.uuid),
            "name": record.name,
            "unit": record.unit,
            "unit_price": str(record.unit_price),
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
        }

    @classmethod
    def _clean_price(cls, unit_price: Decimal) -> Decimal:
        if unit_price < 0:
            raise ValidationError(f"Unit price cannot be negative: {unit_price}", "unit_price")
        return round_decimal(unit_price)

    @classmethod
    def create_for_item(cls, item: StockItem, unit_price: Decimal, unit: str = None) -> CostRecord:
        """Create the cost record of a newly discovered item and link it."""
        record = cls.model.objects.create(
            tenant_id=item.tenant_id,
            name=item.name,
            unit=unit or item.unit,
            unit_price=cls._clean_price(unit_price),
        )
        item.cost_record = record
        item.save(update_fields=["cost_record", "updated_at"])
        return record

    @classmethod
    def refresh(cls, item: StockItem, unit_price: Decimal, unit: str = None) -> CostRecord:
        """Bring the item's cost record in line with the latest purchase price."""
        record = item.cost_record
        if record is None:
            return cls.create_for_item(item, unit_price, unit)

        record.unit_price = cls._clean_price(unit_price)
        if unit:
            record.unit = unit
        record.save(update_fields=["unit_price", "unit", "updated_at"])
        logger.debug(
            "Cost record refreshed",
            extra={"stock_item_id": item.id, "unit_price": str(record.unit_price)},
        )
        return record

import logging
from decimal import Decimal
from typing import Dict, Any, List, Optional

from django.utils import timezone

from stock.models import InvoiceImport, InvoiceImportLine, StockItem
from stock.services.base_service import (
    BaseService, ServiceError, success_response, paginate_queryset,
    ValidationError, MAX_STORED_QUANTITY, require_tenant, round_decimal, to_decimal
)
from stock.services.ledger_engine import StockLedgerService
from stock.services.location_service import LocationService

logger = logging.getLogger(__name__)


def _stored_decimal(value: Any) -> Optional[Decimal]:
    number = to_decimal(value, default=None)
    if number is None or not number.is_finite() or abs(number) > MAX_STORED_QUANTITY:
        return None
    return round_decimal(number)


class InvoiceImportService(BaseService):
    """
    Books the lines of a supplier invoice as receipts.

    Every line is an independent receive command: a failing line is recorded
    with its error and the remaining lines still go through.
    """

    model = InvoiceImport

    @classmethod
    def serialize_line(cls, line: InvoiceImportLine) -> Dict[str, Any]:
        return {
            "line_number": line.line_number,
            "item_name": line.item_name,
            "quantity": str(line.quantity) if line.quantity is not None else None,
            "unit": line.unit,
            "unit_price": str(line.unit_price) if line.unit_price is not None else None,
            "is_new": line.is_new,
            "status": line.status,
            "stock_item_id": line.stock_item_id,
            "transaction_id": line.transaction_id,
            "error": (
                {"code": line.error_code, "message": line.error_message}
                if line.status == InvoiceImportLine.Status.FAILED else None
            ),
        }

    @classmethod
    def serialize(cls, batch: InvoiceImport, include_lines: bool = False) -> Dict[str, Any]:
        data = {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "tenant_id": batch.tenant_id,
            "location_id": batch.location_id,
            "reference": batch.reference,
            "actor_id": batch.actor_id,
            "status": batch.status,
            "status_display": batch.get_status_display(),
            "line_count": batch.line_count,
            "applied_count": batch.applied_count,
            "failed_count": batch.failed_count,
            "imported_at": batch.imported_at.isoformat(),
        }
        if include_lines:
            data["lines"] = [cls.serialize_line(line) for line in batch.lines.all()]
        return data

    @classmethod
    def match_lines(cls, tenant_id: str, lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Resolve invoice lines that name no stock item.

        A line matches the first active item (by name) whose name contains
        the line's item name or is contained in it, case-insensitively.
        Lines without a match are marked as new items.
        """
        items = list(
            StockItem.objects.filter(tenant_id=require_tenant(tenant_id), is_active=True)
            .order_by("name", "id")
            .values("id", "name")
        )

        matched = []
        for raw in lines:
            line = dict(raw) if isinstance(raw, dict) else raw
            if isinstance(line, dict) and not line.get("stock_item_id") and "is_new" not in line:
                needle = str(line.get("item_name") or "").strip().lower()
                hit = next(
                    (item for item in items
                     if needle and (item["name"].lower() in needle or needle in item["name"].lower())),
                    None,
                )
                line["stock_item_id"] = hit["id"] if hit else None
                line["is_new"] = hit is None
            matched.append(line)
        return matched

    @classmethod
    def _apply_line(cls, batch: InvoiceImport, raw: Dict[str, Any]) -> Dict[str, Any]:
        common = {
            "tenant_id": batch.tenant_id,
            "location_id": batch.location_id,
            "quantity": raw.get("quantity"),
            "actor_id": batch.actor_id,
            "unit_price": raw.get("unit_price"),
            "occurred_at": batch.imported_at,
            "import_batch": batch,
            "notes": f"Invoice {batch.reference}" if batch.reference else "Invoice import",
        }

        if raw.get("is_new"):
            return StockLedgerService.receive(
                new_item={
                    "name": raw.get("item_name"),
                    "unit": raw.get("unit"),
                    "reorder_point": raw.get("reorder_point"),
                },
                **common,
            )

        stock_item_id = raw.get("stock_item_id")
        if not stock_item_id:
            raise ValidationError(
                "Line must reference an existing stock item or be marked as new",
                "stock_item_id",
            )
        return StockLedgerService.receive(
            stock_item_id=stock_item_id,
            unit=(raw.get("unit") or None),
            **common,
        )

    @classmethod
    def run(cls,
            tenant_id: str,
            location_id: int,
            lines: List[Dict[str, Any]],
            actor_id: str,
            reference: str = "") -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        actor_id = StockLedgerService.require_actor(actor_id)

        if not isinstance(lines, list) or not lines:
            raise ValidationError("Invoice must contain at least one line", "lines")

        location = LocationService.get_active(tenant_id, location_id)

        batch = InvoiceImport.objects.create(
            tenant_id=tenant_id,
            location=location,
            reference=(reference or "")[:100],
            actor_id=actor_id,
            line_count=len(lines),
            imported_at=timezone.now(),
        )
        logger.info(
            "Invoice import started",
            extra={"tenant_id": tenant_id, "import_id": batch.id, "lines": len(lines)},
        )

        applied = failed = 0
        for number, raw in enumerate(lines, start=1):
            raw = raw if isinstance(raw, dict) else {}
            line = InvoiceImportLine(
                invoice_import=batch,
                line_number=number,
                item_name=str(raw.get("item_name") or "")[:200],
                quantity=_stored_decimal(raw.get("quantity")),
                unit=str(raw.get("unit") or "")[:20],
                unit_price=_stored_decimal(raw.get("unit_price")),
                is_new=bool(raw.get("is_new")),
            )

            try:
                if not raw:
                    raise ValidationError("Line is empty or not an object", "lines")
                result = cls._apply_line(batch, raw)
            except ServiceError as e:
                failed += 1
                line.status = InvoiceImportLine.Status.FAILED
                line.error_code = e.code
                line.error_message = e.message
                logger.warning(
                    "Invoice line failed",
                    extra={"import_id": batch.id, "line_number": number, "error_code": e.code},
                )
            except Exception as e:
                failed += 1
                line.status = InvoiceImportLine.Status.FAILED
                line.error_code = "SERVER_ERROR"
                line.error_message = str(e)[:500]
                logger.exception(
                    "Invoice line crashed",
                    extra={"import_id": batch.id, "line_number": number},
                )
            else:
                applied += 1
                line.status = InvoiceImportLine.Status.APPLIED
                line.stock_item_id = result["stock_item"]["id"]
                line.transaction_id = result["transaction"]["id"]

            line.save()

        if failed == 0:
            batch.status = InvoiceImport.Status.COMPLETED
        elif applied == 0:
            batch.status = InvoiceImport.Status.FAILED
        else:
            batch.status = InvoiceImport.Status.PARTIAL
        batch.applied_count = applied
        batch.failed_count = failed
        batch.save(update_fields=["status", "applied_count", "failed_count", "updated_at"])

        logger.info(
            "Invoice import finished",
            extra={"tenant_id": tenant_id, "import_id": batch.id, "status": batch.status,
                   "applied": applied, "failed": failed},
        )

        return success_response({
            "import": cls.serialize(batch, include_lines=True),
            "applied_count": applied,
            "failed_count": failed,
        }, f"Invoice imported: {applied} applied, {failed} failed")

    @classmethod
    def get(cls, tenant_id: str, import_id: int) -> Dict[str, Any]:
        batch = cls.get_or_404(tenant_id, import_id, "Invoice import")
        return success_response({
            "import": cls.serialize(batch, include_lines=True)
        })

    @classmethod
    def list(cls, tenant_id: str, status: str = None,
             page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        queryset = cls.scoped(tenant_id)

        if status:
            if status not in InvoiceImport.Status.values:
                raise ValidationError(
                    f"Invalid status. Valid: {InvoiceImport.Status.values}", "status"
                )
            queryset = queryset.filter(status=status)

        batches, pagination = paginate_queryset(queryset.order_by("-imported_at", "-id"), page, per_page)

        return success_response({
            "imports": [cls.serialize(b) for b in batches],
            "pagination": pagination,
        })

from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings
from django.db.models import Model

# Largest magnitude a DecimalField(15, 4) column accepts.
MAX_STORED_QUANTITY = Decimal("99999999999.9999")


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class InvalidQuantityError(ValidationError):
    def __init__(self, value: Any, field: str = "quantity", reason: str = "must be greater than zero"):
        super().__init__(
            f"Invalid {field}: {value} ({reason})",
            field,
            {"value": str(value), "reason": reason},
        )
        self.code = "INVALID_QUANTITY"


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class InsufficientStockError(ServiceError):
    def __init__(self, item_name: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient stock for {item_name}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {"item": item_name, "required": str(required), "available": str(available)}
        )


class ConcurrentModificationError(ServiceError):
    def __init__(self, item_name: str, expected_version: int, current_version: int):
        super().__init__(
            f"{item_name} was modified by another operation "
            f"(expected version {expected_version}, current {current_version})",
            "CONCURRENT_MODIFICATION",
            {
                "item": item_name,
                "expected_version": expected_version,
                "current_version": current_version,
            }
        )


class PersistenceError(ServiceError):
    def __init__(self, operation: str, cause: Exception):
        super().__init__(
            f"Could not persist {operation}: {cause}",
            "PERSISTENCE_FAILURE",
            {"operation": operation}
        )


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def round_decimal(value: Decimal, places: int = None) -> Decimal:
    if value is None:
        return Decimal("0")
    if places is None:
        places = settings.STOCK_LEDGER["QUANTITY_PLACES"]
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def parse_quantity(value: Any, field: str = "quantity", allow_zero: bool = False) -> Decimal:
    """Parse a user-supplied quantity, rejecting non-numbers and non-positive values."""
    if value is None or value == "" or isinstance(value, bool):
        raise InvalidQuantityError(value, field, "is required")
    try:
        quantity = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantityError(value, field, "is not a number")
    if not quantity.is_finite():
        raise InvalidQuantityError(value, field, "is not a number")
    if abs(quantity) > MAX_STORED_QUANTITY:
        raise InvalidQuantityError(value, field, f"must not exceed {MAX_STORED_QUANTITY}")

    try:
        quantity = round_decimal(quantity)
    except InvalidOperation:
        raise InvalidQuantityError(value, field, "is not a number")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        reason = "must not be negative" if allow_zero else "must be greater than zero"
        raise InvalidQuantityError(value, field, reason)
    return quantity


def require_tenant(tenant_id: Optional[str]) -> str:
    tenant_id = (tenant_id or "").strip()
    if not tenant_id:
        raise ValidationError("Tenant id is required", "tenant_id")
    return tenant_id


class BaseService:
    model = None

    @classmethod
    def scoped(cls, tenant_id: str):
        return cls.model.objects.filter(tenant_id=require_tenant(tenant_id))

    @classmethod
    def get_by_id(cls, tenant_id: str, id: int) -> Optional[Model]:
        try:
            return cls.scoped(tenant_id).get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, tenant_id: str, id: int, resource: str = None) -> Model:
        obj = cls.get_by_id(tenant_id, id)
        if not obj:
            raise NotFoundError(resource or cls.model.__name__, id)
        return obj

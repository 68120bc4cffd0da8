import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.utils.dateparse import parse_date
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from stock.models import LedgerImmutableError
from stock.services import (
    ServiceError, ValidationError, NotFoundError, BusinessRuleError,
    InsufficientStockError, ConcurrentModificationError, PersistenceError,
    LocationService, StockItemService, StockTransactionService,
    StockLedgerService, InvoiceImportService,
)

logger = logging.getLogger(__name__)


def error_response(message: str, code: str = "ERROR", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message, "details": details or {}}}
    return JsonResponse(data, status=status)


def handle_service_error(e: Exception):
    if isinstance(e, ValidationError):
        details = dict(e.details)
        if e.field:
            details["field"] = e.field
        return error_response(e.message, e.code, 400, details)
    elif isinstance(e, NotFoundError):
        return error_response(e.message, e.code, 404, e.details)
    elif isinstance(e, (InsufficientStockError, ConcurrentModificationError)):
        return error_response(e.message, e.code, 409, e.details)
    elif isinstance(e, BusinessRuleError):
        return error_response(e.message, e.code, 400, e.details)
    elif isinstance(e, PersistenceError):
        return error_response(e.message, e.code, 500, e.details)
    elif isinstance(e, ServiceError):
        return error_response(e.message, e.code, 400, e.details)
    elif isinstance(e, LedgerImmutableError):
        return error_response(str(e), "LEDGER_IMMUTABLE", 409)
    elif isinstance(e, KeyError):
        return error_response(f"Missing field: {e.args[0]}", "VALIDATION_ERROR", 400,
                              {"field": e.args[0]})
    else:
        logger.exception("Unhandled error in stock API")
        return error_response("Internal server error", "SERVER_ERROR", 500)


class BaseStockView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            raise ValidationError("Request body is not valid JSON")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    def get_tenant_id(self, request):
        tenant_id = request.META.get(settings.STOCK_LEDGER["TENANT_HEADER"], "").strip()
        if not tenant_id:
            raise ValidationError("Tenant header is missing", "tenant_id")
        return tenant_id

    def get_actor_id(self, request):
        return request.META.get(settings.STOCK_LEDGER["ACTOR_HEADER"], "").strip()

    def get_int_param(self, request, name, default=None):
        value = request.GET.get(name)
        if value in (None, ""):
            return default
        try:
            return int(value)
        except ValueError:
            raise ValidationError(f"Query parameter '{name}' must be an integer", name)

    def get_bool_param(self, request, name):
        return request.GET.get(name, "false").lower() == "true"

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


# ==================== LOCATIONS ====================

class LocationListView(BaseStockView):

    def get(self, request):
        try:
            result = LocationService.list(
                self.get_tenant_id(request),
                include_inactive=self.get_bool_param(request, "include_inactive"),
                include_stats=self.get_bool_param(request, "stats"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = LocationService.create(self.get_tenant_id(request), data.get("name"))
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class LocationDetailView(BaseStockView):

    def get(self, request, location_id):
        try:
            result = LocationService.get(self.get_tenant_id(request), location_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, location_id):
        try:
            tenant_id = self.get_tenant_id(request)
            data = self.get_json_body(request)
            if data.get("is_active") is True:
                LocationService.activate(tenant_id, location_id)
            if "name" in data:
                result = LocationService.rename(tenant_id, location_id, data["name"])
            else:
                result = LocationService.get(tenant_id, location_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, location_id):
        try:
            result = LocationService.remove(self.get_tenant_id(request), location_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== ITEMS ====================

class StockItemListView(BaseStockView):

    def get(self, request):
        try:
            result = StockItemService.list(
                self.get_tenant_id(request),
                page=self.get_int_param(request, "page", 1),
                per_page=self.get_int_param(request, "per_page", 20),
                search=request.GET.get("search"),
                low_stock_only=self.get_bool_param(request, "low_stock"),
                location_id=self.get_int_param(request, "location_id"),
                active_only=not self.get_bool_param(request, "include_inactive"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockItemService.create(
                self.get_tenant_id(request),
                name=data.get("name"),
                unit=data.get("unit"),
                actor_id=self.get_actor_id(request),
                reorder_point=data.get("reorder_point"),
                default_location_id=data.get("default_location_id"),
                initial_quantity=data.get("initial_quantity"),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class StockItemDetailView(BaseStockView):

    def get(self, request, item_id):
        try:
            result = StockItemService.get(self.get_tenant_id(request), item_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, item_id):
        try:
            data = self.get_json_body(request)
            allowed = {"name", "unit", "reorder_point", "default_location_id"}
            result = StockItemService.update(
                self.get_tenant_id(request), item_id,
                **{k: v for k, v in data.items() if k in allowed}
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockItemHistoryView(BaseStockView):

    def get(self, request, item_id):
        try:
            result = StockTransactionService.history(
                self.get_tenant_id(request), item_id,
                location_id=self.get_int_param(request, "location_id"),
                movement_type=request.GET.get("type"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockItemVerifyView(BaseStockView):

    def get(self, request, item_id):
        try:
            result = StockTransactionService.verify(self.get_tenant_id(request), item_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class LowStockView(BaseStockView):

    def get(self, request):
        try:
            result = StockItemService.get_low_stock(self.get_tenant_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== LEDGER OPERATIONS ====================

class TransferView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.transfer(
                self.get_tenant_id(request),
                stock_item_id=data["stock_item_id"],
                from_location_id=data["from_location_id"],
                to_location_id=data["to_location_id"],
                quantity=data.get("quantity"),
                actor_id=self.get_actor_id(request),
                notes=data.get("notes", ""),
                expected_version=data.get("expected_version"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class AdjustView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.manual_adjust(
                self.get_tenant_id(request),
                stock_item_id=data["stock_item_id"],
                location_id=data["location_id"],
                quantity=data.get("quantity"),
                direction=data.get("direction"),
                actor_id=self.get_actor_id(request),
                notes=data.get("notes", ""),
                expected_version=data.get("expected_version"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockTakeView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.reconcile_stock_take(
                self.get_tenant_id(request),
                stock_item_id=data["stock_item_id"],
                location_id=data["location_id"],
                counted_quantity=data.get("counted_quantity"),
                actor_id=self.get_actor_id(request),
                expected_version=data.get("expected_version"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class StockTakeBulkView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            counts = data.get("counts") or {}
            if isinstance(counts, list):
                counts = {
                    c.get("stock_item_id"): c.get("counted_quantity")
                    for c in counts if isinstance(c, dict)
                }
            result = StockLedgerService.reconcile_stock_take_many(
                self.get_tenant_id(request),
                location_id=data["location_id"],
                counts=counts,
                actor_id=self.get_actor_id(request),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class ReceiveView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.receive(
                self.get_tenant_id(request),
                location_id=data["location_id"],
                quantity=data.get("quantity"),
                actor_id=self.get_actor_id(request),
                stock_item_id=data.get("stock_item_id"),
                new_item=data.get("new_item"),
                unit_price=data.get("unit_price"),
                unit=data.get("unit"),
                notes=data.get("notes", ""),
                expected_version=data.get("expected_version"),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class WasteView(BaseStockView):

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.deduct_waste(
                self.get_tenant_id(request),
                stock_item_id=data["stock_item_id"],
                quantity=data.get("quantity"),
                reason=data.get("reason"),
                actor_id=self.get_actor_id(request),
                notes=data.get("notes", ""),
                location_id=data.get("location_id"),
                expected_version=data.get("expected_version"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== IMPORTS & AUDIT ====================

class InvoiceImportListView(BaseStockView):

    def get(self, request):
        try:
            result = InvoiceImportService.list(
                self.get_tenant_id(request),
                status=request.GET.get("status"),
                page=self.get_int_param(request, "page", 1),
                per_page=self.get_int_param(request, "per_page", 20),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            tenant_id = self.get_tenant_id(request)
            data = self.get_json_body(request)
            lines = data.get("lines")
            if data.get("auto_match") and isinstance(lines, list):
                lines = InvoiceImportService.match_lines(tenant_id, lines)
            result = InvoiceImportService.run(
                tenant_id,
                location_id=data["location_id"],
                lines=lines,
                actor_id=self.get_actor_id(request),
                reference=data.get("reference", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class InvoiceImportDetailView(BaseStockView):

    def get(self, request, import_id):
        try:
            result = InvoiceImportService.get(self.get_tenant_id(request), import_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class TransactionListView(BaseStockView):

    def get(self, request):
        try:
            date_from = request.GET.get("date_from")
            date_to = request.GET.get("date_to")
            result = StockTransactionService.list(
                self.get_tenant_id(request),
                stock_item_id=self.get_int_param(request, "stock_item_id"),
                location_id=self.get_int_param(request, "location_id"),
                movement_type=request.GET.get("type"),
                date_from=parse_date(date_from) if date_from else None,
                date_to=parse_date(date_to) if date_to else None,
                page=self.get_int_param(request, "page", 1),
                per_page=self.get_int_param(request, "per_page"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

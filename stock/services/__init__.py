"""
Stock Services - inventory ledger business logic

Usage:
    from stock.services import StockItemService, StockLedgerService

    # Create item with an opening balance
    result = StockItemService.create("team-1", "Flour", "kg", actor_id="u1",
                                     default_location_id=1, initial_quantity=25)

    # Move stock between locations
    StockLedgerService.transfer("team-1", item_id, 1, 2, 5, actor_id="u1")
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    InvalidQuantityError,
    NotFoundError,
    BusinessRuleError,
    InsufficientStockError,
    ConcurrentModificationError,
    PersistenceError,
    success_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    parse_quantity,
    BaseService,
)

# Core entities
from .location_service import LocationService
from .cost_service import CostRecordService
from .item_service import StockItemService

# Ledger
from .ledger_service import StockTransactionService
from .ledger_engine import StockLedgerService

# Invoices
from .import_service import InvoiceImportService


__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidQuantityError",
    "NotFoundError",
    "BusinessRuleError",
    "InsufficientStockError",
    "ConcurrentModificationError",
    "PersistenceError",
    "success_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "parse_quantity",
    "BaseService",

    "LocationService",
    "CostRecordService",
    "StockItemService",
    "StockTransactionService",
    "StockLedgerService",
    "InvoiceImportService",
]

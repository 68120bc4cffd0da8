import uuid as uuid_lib
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.db.models.functions import Lower
from django.utils import timezone


class LedgerImmutableError(Exception):
    """Raised on any attempt to change or remove a recorded ledger entry."""


class Location(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=100)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                "tenant_id", Lower("name"), name="stock_location_unique_name"
            ),
        ]

    def __str__(self):
        return self.name


class CostRecord(models.Model):
    """
    Unit cost of a stock item. Owned by costing; the ledger only creates it
    for newly imported items and refreshes the price on receipts.
    """

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=200)
    unit = models.CharField(max_length=20)
    unit_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name}: {self.unit_price}/{self.unit}"


class StockItem(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    name = models.CharField(max_length=200)
    unit = models.CharField(max_length=20)
    reorder_point = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    cost_record = models.OneToOneField(
        CostRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_item",
    )
    # Where waste and other location-less operations act.
    default_location = models.ForeignKey(
        Location,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )

    # Bumped by every quantity change; compare-and-swap guard for writers.
    version = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["tenant_id", "name"], name="stock_item_tenant_name_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.unit})"

    @property
    def locations(self):
        return [
            {"location_id": level.location_id, "quantity": level.quantity}
            for level in self.stock_levels.all()
        ]

    @property
    def total_quantity(self) -> Decimal:
        return sum((level.quantity for level in self.stock_levels.all()), Decimal("0"))

    @property
    def is_low_stock(self) -> bool:
        return self.total_quantity <= self.reorder_point


class StockLevel(models.Model):
    """
    Current quantity of one item at one location.
    Written only by the ledger engine; a missing row means zero.
    """

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    stock_item = models.ForeignKey(
        StockItem, on_delete=models.CASCADE, related_name="stock_levels"
    )
    location = models.ForeignKey(
        Location, on_delete=models.PROTECT, related_name="stock_levels"
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    last_counted_at = models.DateTimeField(null=True, blank=True)
    last_restocked_at = models.DateTimeField(null=True, blank=True)
    last_movement_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["stock_item", "location"], name="stock_level_unique_item_location"
            ),
            models.CheckConstraint(
                condition=Q(quantity__gte=0), name="stock_level_quantity_non_negative"
            ),
        ]

    def __str__(self):
        return f"{self.stock_item.name} @ {self.location.name}: {self.quantity}"


class LedgerQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise LedgerImmutableError("Ledger entries cannot be updated")

    def delete(self):
        raise LedgerImmutableError("Ledger entries cannot be deleted")


class StockTransaction(models.Model):
    class MovementType(models.TextChoices):
        INITIAL = "initial", "Opening Balance"
        TRANSFER_OUT = "transfer_out", "Transfer Out"
        TRANSFER_IN = "transfer_in", "Transfer In"
        MANUAL_ADD = "manual_add", "Manual Add"
        MANUAL_SUBTRACT = "manual_subtract", "Manual Subtract"
        STOCK_TAKE_ADJUSTMENT = "stock_take_adjustment", "Stock-take Adjustment"
        RECEIPT = "receipt", "Receipt"
        WASTE = "waste", "Waste"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    stock_item = models.ForeignKey(
        StockItem, on_delete=models.PROTECT, related_name="transactions"
    )
    location = models.ForeignKey(
        Location, on_delete=models.PROTECT, related_name="transactions"
    )
    movement_type = models.CharField(
        max_length=30, choices=MovementType.choices, db_index=True
    )

    # Signed: positive adds stock, negative removes it.
    quantity_change = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_before = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_after = models.DecimalField(max_digits=15, decimal_places=4)

    # Transfer legs point at each other.
    related_transaction_uuid = models.UUIDField(null=True, blank=True, db_index=True)
    import_batch = models.ForeignKey(
        "InvoiceImport",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )

    actor_id = models.CharField(max_length=64)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = LedgerQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["tenant_id", "stock_item", "created_at"], name="stock_txn_tenant_item_idx"),
            models.Index(fields=["movement_type", "created_at"], name="stock_txn_type_created_idx"),
        ]

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity_change:+} @ {self.location_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutableError("Ledger entries cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError("Ledger entries cannot be deleted")

    @property
    def related_transaction(self):
        if self.related_transaction_uuid is None:
            return None
        return StockTransaction.objects.filter(uuid=self.related_transaction_uuid).first()


class WasteLog(models.Model):
    class Reason(models.TextChoices):
        EXPIRED = "expired", "Expired"
        SPOILED = "spoiled", "Spoiled"
        DAMAGED = "damaged", "Damaged"
        COOKING_ERROR = "cooking_error", "Cooking Error"
        OVERPRODUCTION = "overproduction", "Overproduction"
        OTHER = "other", "Other"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    stock_item = models.ForeignKey(
        StockItem, on_delete=models.PROTECT, related_name="waste_logs"
    )
    location = models.ForeignKey(
        Location, on_delete=models.PROTECT, related_name="waste_logs"
    )
    requested_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    applied_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    reason = models.CharField(max_length=20, choices=Reason.choices)
    notes = models.TextField(blank=True, default="")
    actor_id = models.CharField(max_length=64)
    transaction = models.OneToOneField(
        StockTransaction,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="waste_log",
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.stock_item.name} × {self.applied_quantity} ({self.reason})"


class InvoiceImport(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        PARTIAL = "PARTIAL", "Partially Applied"
        FAILED = "FAILED", "Failed"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    tenant_id = models.CharField(max_length=64, db_index=True)
    location = models.ForeignKey(
        Location, on_delete=models.PROTECT, related_name="invoice_imports"
    )
    reference = models.CharField(max_length=100, blank=True, default="")
    actor_id = models.CharField(max_length=64)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING
    )
    line_count = models.PositiveIntegerField(default=0)
    applied_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)
    imported_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-imported_at"]

    def __str__(self):
        return f"Import {self.reference or self.uuid} ({self.get_status_display()})"


class InvoiceImportLine(models.Model):
    class Status(models.TextChoices):
        APPLIED = "APPLIED", "Applied"
        FAILED = "FAILED", "Failed"

    invoice_import = models.ForeignKey(
        InvoiceImport, on_delete=models.CASCADE, related_name="lines"
    )
    line_number = models.PositiveIntegerField()
    item_name = models.CharField(max_length=200)
    quantity = models.DecimalField(max_digits=15, decimal_places=4, null=True, blank=True)
    unit = models.CharField(max_length=20, blank=True, default="")
    unit_price = models.DecimalField(max_digits=15, decimal_places=4, null=True, blank=True)
    is_new = models.BooleanField(default=False)

    stock_item = models.ForeignKey(
        StockItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    transaction = models.OneToOneField(
        StockTransaction,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="import_line",
    )
    status = models.CharField(max_length=10, choices=Status.choices)
    error_code = models.CharField(max_length=50, blank=True, default="")
    error_message = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["invoice_import", "line_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice_import", "line_number"], name="stock_import_line_unique_number"
            ),
        ]

    def __str__(self):
        return f"#{self.line_number} {self.item_name} ({self.status})"

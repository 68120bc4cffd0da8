from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter

from .models import (
    Location, CostRecord, StockItem, StockLevel, StockTransaction,
    WasteLog, InvoiceImport, InvoiceImportLine,
)


class ReadOnlyAdminMixin:
    """Rows written only by the ledger engine."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class StockLevelInline(ReadOnlyAdminMixin, TabularInline):
    model = StockLevel
    extra = 0
    fields = ('location', 'quantity', 'last_movement_at', 'last_counted_at')
    readonly_fields = fields


class InvoiceImportLineInline(ReadOnlyAdminMixin, TabularInline):
    model = InvoiceImportLine
    extra = 0
    fields = ('line_number', 'item_name', 'quantity', 'unit', 'unit_price',
              'is_new', 'status', 'stock_item', 'error_code', 'error_message')
    readonly_fields = fields


@admin.register(Location)
class LocationAdmin(ModelAdmin):
    list_display = ['id', 'name', 'tenant_id', 'status_badge', 'created_at']
    list_filter = ['is_active', 'tenant_id']
    search_fields = ['name', 'tenant_id']
    readonly_fields = ['uuid', 'created_at', 'updated_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")


@admin.register(CostRecord)
class CostRecordAdmin(ModelAdmin):
    list_display = ['id', 'name', 'tenant_id', 'unit', 'unit_price', 'updated_at']
    search_fields = ['name', 'tenant_id']
    readonly_fields = ['uuid', 'created_at', 'updated_at']


@admin.register(StockItem)
class StockItemAdmin(ModelAdmin):
    list_display = ['id', 'name', 'tenant_id', 'unit', 'total_display',
                    'reorder_point', 'low_stock_badge', 'version']
    list_filter = ['is_active', 'tenant_id']
    search_fields = ['name', 'tenant_id']
    list_filter_submit = True
    inlines = [StockLevelInline]
    # Quantities and the version move only through the ledger engine.
    readonly_fields = ['uuid', 'version', 'created_at', 'updated_at']

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related('stock_levels')

    @display(description=_("Total"))
    def total_display(self, obj):
        return f"{obj.total_quantity} {obj.unit}"

    @display(description=_("Stock"), label=True)
    def low_stock_badge(self, obj):
        if obj.is_low_stock:
            return 'warning', _("Low")
        return 'success', _("OK")


@admin.register(StockTransaction)
class StockTransactionAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['id', 'created_at', 'stock_item', 'location', 'movement_type',
                    'change_display', 'quantity_after', 'actor_id']
    list_filter = [
        'movement_type',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['stock_item__name', 'actor_id', 'notes', 'uuid']
    list_filter_submit = True
    list_fullwidth = True
    list_select_related = ['stock_item', 'location']

    @display(description=_("Change"), ordering='quantity_change')
    def change_display(self, obj):
        return f"{obj.quantity_change:+}"


@admin.register(WasteLog)
class WasteLogAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['id', 'created_at', 'stock_item', 'location', 'reason',
                    'requested_quantity', 'applied_quantity', 'actor_id']
    list_filter = ['reason', ('created_at', RangeDateTimeFilter)]
    search_fields = ['stock_item__name', 'notes']
    list_filter_submit = True


@admin.register(InvoiceImport)
class InvoiceImportAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['id', 'reference', 'location', 'status_badge',
                    'applied_count', 'failed_count', 'imported_at']
    list_filter = ['status', ('imported_at', RangeDateTimeFilter)]
    search_fields = ['reference', 'actor_id']
    list_filter_submit = True
    inlines = [InvoiceImportLineInline]

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'PENDING': 'info',
            'COMPLETED': 'success',
            'PARTIAL': 'warning',
            'FAILED': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("locations/", views.LocationListView.as_view(), name="location-list"),
    path("locations/<int:location_id>/", views.LocationDetailView.as_view(), name="location-detail"),

    path("items/", views.StockItemListView.as_view(), name="item-list"),
    path("items/<int:item_id>/", views.StockItemDetailView.as_view(), name="item-detail"),
    path("items/<int:item_id>/history/", views.StockItemHistoryView.as_view(), name="item-history"),
    path("items/<int:item_id>/verify/", views.StockItemVerifyView.as_view(), name="item-verify"),
    path("low-stock/", views.LowStockView.as_view(), name="low-stock"),

    path("transfer/", views.TransferView.as_view(), name="transfer"),
    path("adjust/", views.AdjustView.as_view(), name="adjust"),
    path("stock-take/", views.StockTakeView.as_view(), name="stock-take"),
    path("stock-take/bulk/", views.StockTakeBulkView.as_view(), name="stock-take-bulk"),
    path("receive/", views.ReceiveView.as_view(), name="receive"),
    path("waste/", views.WasteView.as_view(), name="waste"),

    path("imports/", views.InvoiceImportListView.as_view(), name="import-list"),
    path("imports/<int:import_id>/", views.InvoiceImportDetailView.as_view(), name="import-detail"),

    path("transactions/", views.TransactionListView.as_view(), name="transaction-list"),
]

import uuid

import django.db.models.deletion
import django.db.models.functions.text
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "constraints": [
                    models.UniqueConstraint(
                        models.F("tenant_id"),
                        django.db.models.functions.text.Lower("name"),
                        name="stock_location_unique_name",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CostRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=200)),
                ("unit", models.CharField(max_length=20)),
                ("unit_price", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="StockItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=200)),
                ("unit", models.CharField(max_length=20)),
                ("reorder_point", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("version", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("cost_record", models.OneToOneField(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="stock_item", to="stock.costrecord",
                )),
                ("default_location", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name="+", to="stock.location",
                )),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["tenant_id", "name"], name="stock_item_tenant_name_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockLevel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("quantity", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("last_counted_at", models.DateTimeField(blank=True, null=True)),
                ("last_restocked_at", models.DateTimeField(blank=True, null=True)),
                ("last_movement_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("stock_item", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="stock_levels", to="stock.stockitem",
                )),
                ("location", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="stock_levels", to="stock.location",
                )),
            ],
            options={
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("stock_item", "location"), name="stock_level_unique_item_location"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gte", 0)), name="stock_level_quantity_non_negative"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceImport",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("reference", models.CharField(blank=True, default="", max_length=100)),
                ("actor_id", models.CharField(max_length=64)),
                ("status", models.CharField(
                    choices=[
                        ("PENDING", "Pending"),
                        ("COMPLETED", "Completed"),
                        ("PARTIAL", "Partially Applied"),
                        ("FAILED", "Failed"),
                    ],
                    default="PENDING", max_length=20,
                )),
                ("line_count", models.PositiveIntegerField(default=0)),
                ("applied_count", models.PositiveIntegerField(default=0)),
                ("failed_count", models.PositiveIntegerField(default=0)),
                ("imported_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("location", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="invoice_imports", to="stock.location",
                )),
            ],
            options={
                "ordering": ["-imported_at"],
            },
        ),
        migrations.CreateModel(
            name="StockTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("movement_type", models.CharField(
                    choices=[
                        ("initial", "Opening Balance"),
                        ("transfer_out", "Transfer Out"),
                        ("transfer_in", "Transfer In"),
                        ("manual_add", "Manual Add"),
                        ("manual_subtract", "Manual Subtract"),
                        ("stock_take_adjustment", "Stock-take Adjustment"),
                        ("receipt", "Receipt"),
                        ("waste", "Waste"),
                    ],
                    db_index=True, max_length=30,
                )),
                ("quantity_change", models.DecimalField(decimal_places=4, max_digits=15)),
                ("quantity_before", models.DecimalField(decimal_places=4, max_digits=15)),
                ("quantity_after", models.DecimalField(decimal_places=4, max_digits=15)),
                ("related_transaction_uuid", models.UUIDField(blank=True, db_index=True, null=True)),
                ("actor_id", models.CharField(max_length=64)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("stock_item", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="transactions", to="stock.stockitem",
                )),
                ("location", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="transactions", to="stock.location",
                )),
                ("import_batch", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name="transactions", to="stock.invoiceimport",
                )),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["tenant_id", "stock_item", "created_at"], name="stock_txn_tenant_item_idx"),
                    models.Index(fields=["movement_type", "created_at"], name="stock_txn_type_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WasteLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("tenant_id", models.CharField(db_index=True, max_length=64)),
                ("requested_quantity", models.DecimalField(decimal_places=4, max_digits=15)),
                ("applied_quantity", models.DecimalField(decimal_places=4, max_digits=15)),
                ("reason", models.CharField(
                    choices=[
                        ("expired", "Expired"),
                        ("spoiled", "Spoiled"),
                        ("damaged", "Damaged"),
                        ("cooking_error", "Cooking Error"),
                        ("overproduction", "Overproduction"),
                        ("other", "Other"),
                    ],
                    max_length=20,
                )),
                ("notes", models.TextField(blank=True, default="")),
                ("actor_id", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("stock_item", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="waste_logs", to="stock.stockitem",
                )),
                ("location", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="waste_logs", to="stock.location",
                )),
                ("transaction", models.OneToOneField(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name="waste_log", to="stock.stocktransaction",
                )),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="InvoiceImportLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField()),
                ("item_name", models.CharField(max_length=200)),
                ("quantity", models.DecimalField(blank=True, decimal_places=4, max_digits=15, null=True)),
                ("unit", models.CharField(blank=True, default="", max_length=20)),
                ("unit_price", models.DecimalField(blank=True, decimal_places=4, max_digits=15, null=True)),
                ("is_new", models.BooleanField(default=False)),
                ("status", models.CharField(
                    choices=[("APPLIED", "Applied"), ("FAILED", "Failed")], max_length=10,
                )),
                ("error_code", models.CharField(blank=True, default="", max_length=50)),
                ("error_message", models.TextField(blank=True, default="")),
                ("invoice_import", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="lines", to="stock.invoiceimport",
                )),
                ("stock_item", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="+", to="stock.stockitem",
                )),
                ("transaction", models.OneToOneField(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name="import_line", to="stock.stocktransaction",
                )),
            ],
            options={
                "ordering": ["invoice_import", "line_number"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("invoice_import", "line_number"), name="stock_import_line_unique_number"
                    ),
                ],
            },
        ),
    ]

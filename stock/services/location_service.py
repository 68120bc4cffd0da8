import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Count, Sum

from stock.models import Location, StockItem, StockLevel, StockTransaction
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, NotFoundError, BusinessRuleError, require_tenant
)

logger = logging.getLogger(__name__)


class LocationService(BaseService):
    model = Location

    @classmethod
    def serialize(cls, location: Location, include_stats: bool = False) -> Dict[str, Any]:
        data = {
            "id": location.id,
            "uuid": str(location.uuid),
            "tenant_id": location.tenant_id,
            "name": location.name,
            "is_active": location.is_active,
            "created_at": location.created_at.isoformat(),
        }

        if include_stats:
            stats = StockLevel.objects.filter(location=location, quantity__gt=0).aggregate(
                total_items=Count("id"),
                total_quantity=Sum("quantity"),
            )
            data["stats"] = {
                "item_count": stats["total_items"] or 0,
                "total_quantity": str(stats["total_quantity"] or 0),
            }

        return data

    @classmethod
    def _clean_name(cls, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Location name is required", "name")
        return name

    @classmethod
    def _check_unique_name(cls, tenant_id: str, name: str, exclude_id: int = None):
        queryset = cls.scoped(tenant_id).filter(name__iexact=name)
        if exclude_id:
            queryset = queryset.exclude(id=exclude_id)
        if queryset.exists():
            raise ValidationError(f"Location with name '{name}' already exists", "name")

    @classmethod
    def list(cls, tenant_id: str, include_inactive: bool = False,
             include_stats: bool = False) -> Dict[str, Any]:
        queryset = cls.scoped(tenant_id)

        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        locations = [
            cls.serialize(loc, include_stats=include_stats)
            for loc in queryset.order_by("name")
        ]

        return success_response({
            "locations": locations,
            "count": len(locations),
        })

    @classmethod
    def get(cls, tenant_id: str, location_id: int) -> Dict[str, Any]:
        location = cls.get_or_404(tenant_id, location_id, "Location")
        return success_response({
            "location": cls.serialize(location, include_stats=True)
        })

    @classmethod
    def get_active(cls, tenant_id: str, location_id: int) -> Location:
        """Location usable as the target of a ledger operation."""
        location = cls.get_or_404(tenant_id, location_id, "Location")
        if not location.is_active:
            raise NotFoundError("Location", location_id)
        return location

    @classmethod
    @transaction.atomic
    def create(cls, tenant_id: str, name: str) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        name = cls._clean_name(name)
        cls._check_unique_name(tenant_id, name)

        location = cls.model.objects.create(tenant_id=tenant_id, name=name)
        logger.info("Location created", extra={"tenant_id": tenant_id, "location_id": location.id})

        return success_response({
            "id": location.id,
            "uuid": str(location.uuid),
            "location": cls.serialize(location)
        }, f"Location '{name}' created")

    @classmethod
    @transaction.atomic
    def rename(cls, tenant_id: str, location_id: int, name: str) -> Dict[str, Any]:
        location = cls.get_or_404(tenant_id, location_id, "Location")
        name = cls._clean_name(name)

        if name != location.name:
            cls._check_unique_name(tenant_id, name, exclude_id=location.id)
            location.name = name
            location.save(update_fields=["name", "updated_at"])

        return success_response({
            "location": cls.serialize(location)
        }, "Location updated")

    @classmethod
    @transaction.atomic
    def remove(cls, tenant_id: str, location_id: int) -> Dict[str, Any]:
        """
        Delete a location that holds no stock.

        Locations referenced by the ledger or used as an item default are
        deactivated instead so that history keeps resolving.
        """
        location = cls.get_or_404(tenant_id, location_id, "Location")

        has_stock = StockLevel.objects.filter(location=location, quantity__gt=0).exists()
        if has_stock:
            raise BusinessRuleError(
                "Cannot remove location with stock. Transfer stock first.",
                "location_has_stock",
            )

        referenced = (
            StockTransaction.objects.filter(location=location).exists()
            or StockItem.objects.filter(default_location=location).exists()
        )
        if referenced:
            location.is_active = False
            location.save(update_fields=["is_active", "updated_at"])
            logger.info("Location deactivated", extra={"tenant_id": tenant_id, "location_id": location_id})
            return success_response({
                "id": location_id,
                "deleted": False,
                "deactivated": True,
            }, "Location deactivated (referenced by stock history)")

        StockLevel.objects.filter(location=location).delete()
        location.delete()
        logger.info("Location deleted", extra={"tenant_id": tenant_id, "location_id": location_id})

        return success_response({
            "id": location_id,
            "deleted": True,
            "deactivated": False,
        }, "Location deleted")

    @classmethod
    @transaction.atomic
    def activate(cls, tenant_id: str, location_id: int) -> Dict[str, Any]:
        location = cls.get_or_404(tenant_id, location_id, "Location")
        location.is_active = True
        location.save(update_fields=["is_active", "updated_at"])

        return success_response({
            "location": cls.serialize(location)
        }, "Location activated")

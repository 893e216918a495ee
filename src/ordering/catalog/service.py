"""Service catalog — the alteration services customers can book.

Orders are priced from this catalog only; clients never supply prices.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.money import to_pence


@ordering.aggregate
class Service:
    name = String(required=True, max_length=150)
    category = String(max_length=50)
    description = Text()
    price = Integer(required=True, min_value=0)  # pence
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, name, price, category=None, description=None):
        now = datetime.now(UTC)
        return cls(
            name=name,
            price=price,
            category=category,
            description=description,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    def deactivate(self):
        self.is_active = False
        self.updated_at = datetime.now(UTC)


@ordering.repository(part_of=Service)
class ServiceRepository:
    def priced_lookup(self, service_ids) -> dict[str, Service]:
        """Return active services keyed by id; unknown or inactive ids are absent."""
        wanted = sorted({str(service_id) for service_id in service_ids if service_id})
        if not wanted:
            return {}
        services = self._dao.query.filter(id__in=wanted, is_active=True).limit(len(wanted)).all().items
        return {str(service.id): service for service in services}

    def active(self, limit: int = 200):
        return self._dao.query.filter(is_active=True).order_by("name").limit(limit).all().items


@ordering.command(part_of="Service")
class RegisterService:
    name = String(required=True, max_length=150)
    price = String(required=True, max_length=20)  # decimal pounds, e.g. "12.00"
    category = String(max_length=50)
    description = Text()


@ordering.command(part_of="Service")
class DeactivateService:
    service_id = Identifier(required=True)


@ordering.command_handler(part_of=Service)
class ServiceCatalogHandler:
    @handle(RegisterService)
    def register_service(self, command):
        try:
            price = to_pence(command.price)
        except ValueError:
            raise ValidationError({"price": [f"Invalid price: {command.price}"]})
        if price < 0:
            raise ValidationError({"price": ["Price cannot be negative"]})

        service = Service.register(
            name=command.name,
            price=price,
            category=command.category,
            description=command.description,
        )
        current_domain.repository_for(Service).add(service)
        return str(service.id)

    @handle(DeactivateService)
    def deactivate_service(self, command):
        repo = current_domain.repository_for(Service)
        service = repo.get(command.service_id)
        service.deactivate()
        repo.add(service)

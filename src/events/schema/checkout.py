"""Public checkout schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import EmailStr, Field

from common.schema import OneToSixtyFourString, OneToTwoHundredString
from events.models import Event, Reservation, Ticket, TicketTier
from events.service.capacity_ledger import TierAvailability


class PublicEventSchema(ModelSchema):
    class Meta:
        model = Event
        fields = ["id", "name", "slug", "start", "end", "timezone", "location_name", "max_tickets_per_order"]


class TierAvailabilitySchema(Schema):
    id: UUID
    name: str
    description: str | None = None
    price: Decimal
    currency: str
    total_quantity: int | None = None
    max_per_customer: int | None = None
    available: int | None = None
    sold_out: bool

    @classmethod
    def from_availability(cls, availability: TierAvailability) -> "TierAvailabilitySchema":
        tier: TicketTier = availability.tier
        return cls(
            id=tier.id,
            name=tier.name,
            description=tier.description,
            price=tier.price,
            currency=tier.currency,
            total_quantity=tier.total_quantity,
            max_per_customer=tier.max_per_customer,
            available=availability.available,
            sold_out=availability.is_sold_out,
        )


class EventTiersSchema(Schema):
    event: PublicEventSchema
    tiers: list[TierAvailabilitySchema]


class ReservationCreateSchema(Schema):
    tier_id: UUID
    quantity: int = Field(..., ge=1)
    customer_email: EmailStr | None = None


class ReservationSchema(ModelSchema):
    """A live hold. ``session_id`` is the capability the client presents at purchase."""

    tier_id: UUID
    tier_name: str
    tier_price: Decimal
    currency: str

    class Meta:
        model = Reservation
        fields = ["id", "session_id", "quantity", "expires_at"]

    @staticmethod
    def resolve_tier_name(obj: Reservation) -> str:
        return obj.tier.name

    @staticmethod
    def resolve_tier_price(obj: Reservation) -> Decimal:
        return obj.tier.price

    @staticmethod
    def resolve_currency(obj: Reservation) -> str:
        return obj.tier.currency


class PurchaseSchema(Schema):
    session_id: OneToSixtyFourString
    tier_id: UUID
    quantity: int = Field(..., ge=1)
    customer_email: EmailStr
    customer_name: OneToTwoHundredString
    payment_method_id: str | None = None


class TicketSchema(ModelSchema):
    tier_id: UUID
    event_id: UUID
    tier_name: str

    class Meta:
        model = Ticket
        fields = [
            "id",
            "redemption_code",
            "status",
            "customer_email",
            "customer_name",
            "amount_paid",
            "created_at",
        ]

    @staticmethod
    def resolve_tier_name(obj: Ticket) -> str:
        return obj.tier.name


class PurchaseResponseSchema(Schema):
    tickets: list[TicketSchema]
    total_amount: Decimal
    customer_email: str
    payment_intent_id: str | None = None
    purchased_at: datetime

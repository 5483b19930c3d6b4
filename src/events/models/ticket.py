import secrets
import typing as t
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel

from .event import Event
from .organization import Organization


def to_cents(amount: Decimal) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer minor units back to a two-decimal major-unit amount."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class TicketTierQuerySet(models.QuerySet["TicketTier"]):
    def active(self) -> t.Self:
        """Tiers currently offered for sale."""
        return self.filter(is_active=True)


class TicketTier(TimeStampedModel):
    """A priced category of admission for an event, with optional capacity and per-customer cap."""

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="ticket_tiers")
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(null=True, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY, help_text="ISO 4217 currency code")
    total_quantity = models.PositiveIntegerField(
        null=True, blank=True, help_text="Capacity of the tier. Leave empty for unlimited."
    )
    max_per_customer = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Maximum tickets a single email may hold for this tier.",
    )
    is_active = models.BooleanField(default=True, db_index=True)
    display_order = models.PositiveIntegerField(default=0)

    objects = TicketTierQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["event", "name"], name="unique_event_name"),
        ]
        ordering = ["display_order", "price", "name"]

    def __str__(self) -> str:
        return f"{self.event} - {self.name}"

    @property
    def price_cents(self) -> int:
        return to_cents(self.price)

    @property
    def is_unlimited(self) -> bool:
        return self.total_quantity is None


def generate_session_id() -> str:
    return secrets.token_hex(16)


def _get_reservation_default_expiry() -> datetime:
    return timezone.now() + timedelta(minutes=settings.RESERVATION_TTL_MINUTES)


class ReservationQuerySet(models.QuerySet["Reservation"]):
    def live(self, now: datetime | None = None) -> t.Self:
        """Reservations that still hold capacity."""
        return self.filter(expires_at__gt=now or timezone.now())

    def expired(self, before: datetime | None = None) -> t.Self:
        """Reservations whose hold lapsed at or before the given instant."""
        return self.filter(expires_at__lte=before or timezone.now())


class Reservation(TimeStampedModel):
    """A time-limited hold on units of a tier, identified by an unguessable session id.

    A reservation counts against capacity and caps only while it is live. It is removed when
    the purchase commits or when the sweeper collects it after expiry.
    """

    tier = models.ForeignKey(TicketTier, on_delete=models.CASCADE, related_name="reservations")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    session_id = models.CharField(max_length=64, unique=True, default=generate_session_id, editable=False)
    expires_at = models.DateTimeField(default=_get_reservation_default_expiry, db_index=True)
    customer_email = models.EmailField(null=True, blank=True, db_index=True)
    customer_ip = models.CharField(max_length=45, null=True, blank=True, db_index=True)
    claimed_at = models.DateTimeField(
        null=True, blank=True, help_text="Set while a purchase is charging against this reservation."
    )

    objects = ReservationQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Reservation of {self.quantity} x {self.tier_id}"

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return whether the hold has lapsed."""
        return self.expires_at <= (now or timezone.now())


def generate_redemption_code() -> str:
    return secrets.token_hex(32)


class TicketQuerySet(models.QuerySet["Ticket"]):
    def committed(self) -> t.Self:
        """Tickets that consume capacity: valid or already used."""
        return self.filter(status__in=Ticket.COMMITTED_STATUSES)

    def not_cancelled(self) -> t.Self:
        """Tickets that count against per-customer caps."""
        return self.exclude(status=Ticket.TicketStatus.CANCELLED)


class Ticket(TimeStampedModel):
    """A single admission sold to a customer, redeemable once with its redemption code."""

    class TicketStatus(models.TextChoices):
        VALID = "valid", "Valid"
        USED = "used", "Used"
        REFUNDED = "refunded", "Refunded"
        CANCELLED = "cancelled", "Cancelled"

    COMMITTED_STATUSES = (TicketStatus.VALID, TicketStatus.USED)

    tier = models.ForeignKey(TicketTier, on_delete=models.PROTECT, related_name="tickets")
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="tickets")
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="tickets")
    customer_email = models.EmailField(db_index=True)
    customer_name = models.CharField(max_length=255, null=True, blank=True)
    customer_ip = models.CharField(max_length=45, null=True, blank=True)
    redemption_code = models.CharField(max_length=64, unique=True, default=generate_redemption_code, editable=False)
    status = models.CharField(max_length=20, choices=TicketStatus.choices, default=TicketStatus.VALID, db_index=True)
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    platform_fee_cents = models.PositiveIntegerField(default=0)
    stripe_payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    stripe_charge_id = models.CharField(max_length=255, null=True, blank=True)
    used_at = models.DateTimeField(null=True, blank=True, db_index=True)
    used_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="redeemed_tickets",
    )
    used_device_id = models.CharField(max_length=255, null=True, blank=True)

    objects = TicketQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["event", "customer_email"], name="ticket_event_email_idx"),
            models.Index(fields=["event", "customer_ip"], name="ticket_event_ip_idx"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Ticket {self.id} for {self.customer_email} ({self.status})"

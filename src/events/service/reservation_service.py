"""Time-boxed holds on ticket tier inventory."""

from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from common.utils import normalize_email
from events.exceptions import (
    InsufficientCapacityError,
    InvalidTierError,
    OverPerOrderLimitError,
    ReservationExpiredOrInvalidError,
    TicketingValidationError,
)
from events.models import Event, Reservation, TicketTier

from . import capacity_ledger
from .purchase_limits import IdentityCapPolicy, PurchaseLimitPolicy

logger = structlog.get_logger(__name__)


class ReservationService:
    """Creates and looks up reservations for the tiers of a single published event."""

    def __init__(self, event: Event, limit_policy: PurchaseLimitPolicy | None = None) -> None:
        """Initialize the reservation service.

        Args:
            event: The event whose tiers are being reserved.
            limit_policy: Per-identity cap policy. Defaults to the email/network caps.
        """
        self.event = event
        self.limit_policy = limit_policy or IdentityCapPolicy()

    def _get_locked_tier(self, tier_id: UUID) -> TicketTier:
        try:
            return TicketTier.objects.select_for_update().active().get(pk=tier_id, event=self.event)
        except TicketTier.DoesNotExist as e:
            raise InvalidTierError() from e

    @transaction.atomic
    def create_reservation(
        self,
        tier_id: UUID,
        quantity: int,
        customer_email: str | None = None,
        customer_ip: str | None = None,
    ) -> Reservation:
        """Hold ``quantity`` units of a tier for the reservation TTL.

        The tier row stays locked from the availability read to the insert, so concurrent requests
        for the last units are serialized.

        Args:
            tier_id: The tier to reserve.
            quantity: Number of units.
            customer_email: Optional buyer email. When absent only the network cap applies.
            customer_ip: Optional buyer network address.

        Returns:
            The new reservation, carrying its session id and expiry.

        Raises:
            OverPerOrderLimitError: If quantity exceeds the event's per-order maximum.
            InvalidTierError: If the tier is inactive or belongs to another event.
            InsufficientCapacityError: If fewer than ``quantity`` units are available.
            PerCustomerLimitExceededError: If the email cap would be exceeded.
            PerNetworkLimitExceededError: If the network cap would be exceeded.
        """
        if quantity < 1:
            raise TicketingValidationError("Quantity must be at least 1.")
        if quantity > self.event.max_tickets_per_order:
            raise OverPerOrderLimitError(self.event.max_tickets_per_order)

        customer_email = normalize_email(customer_email)
        tier = self._get_locked_tier(tier_id)

        remaining = capacity_ledger.available(tier)
        if remaining is not None and remaining < quantity:
            raise InsufficientCapacityError(available=max(0, remaining))

        self.limit_policy.check_reservation(tier, quantity, customer_email, customer_ip)

        reservation = Reservation.objects.create(
            tier=tier,
            quantity=quantity,
            customer_email=customer_email,
            customer_ip=customer_ip,
        )
        logger.info(
            "reservation_created",
            event_id=str(self.event.id),
            tier_id=str(tier.id),
            reservation_id=str(reservation.id),
            quantity=quantity,
            expires_at=reservation.expires_at.isoformat(),
        )
        return reservation

    def get_reservation(self, session_id: str, tier_id: UUID | None = None) -> Reservation:
        """Return a live reservation of this event.

        Expired rows are treated as absent even though they may still be stored.

        Raises:
            ReservationExpiredOrInvalidError: If no live reservation matches.
        """
        qs = Reservation.objects.live(timezone.now()).select_related("tier").filter(
            session_id=session_id, tier__event=self.event
        )
        if tier_id is not None:
            qs = qs.filter(tier_id=tier_id)
        reservation = qs.first()
        if reservation is None:
            raise ReservationExpiredOrInvalidError()
        return reservation

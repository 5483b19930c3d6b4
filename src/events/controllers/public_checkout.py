import typing as t
from uuid import UUID

from django.utils import timezone
from ninja_extra import ControllerBase, api_controller, route

from common.schema import ErrorResponse
from common.throttling import CheckoutThrottle
from common.utils import get_client_ip
from events import schema
from events.models import Reservation
from events.service import capacity_ledger, event_service, ticket_notification_service
from events.service.purchase_service import PurchaseService
from events.service.reservation_service import ReservationService

ERROR_RESPONSES = {400: ErrorResponse, 402: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse}


@api_controller("/events/public", tags=["Checkout"])
class PublicCheckoutController(ControllerBase):
    """Anonymous checkout: browse tiers, hold tickets and pay for them."""

    @route.get("/{slug}/tiers", url_name="list_public_tiers", response={200: schema.EventTiersSchema, 404: ErrorResponse})
    def list_tiers(self, slug: str) -> dict[str, t.Any]:
        """List the active ticket tiers of a published event with their current availability.

        ``available`` is null for tiers without a capacity. Availability already accounts for
        tickets held by other buyers' live reservations.
        """
        event = event_service.get_published_event(slug)
        return {
            "event": event,
            "tiers": [
                schema.TierAvailabilitySchema.from_availability(availability)
                for availability in capacity_ledger.list_tier_availability(event)
            ],
        }

    @route.post(
        "/{slug}/reservations",
        url_name="create_reservation",
        response={201: schema.ReservationSchema, **ERROR_RESPONSES},
        throttle=CheckoutThrottle(),
    )
    def create_reservation(self, slug: str, payload: schema.ReservationCreateSchema) -> tuple[int, Reservation]:
        """Hold tickets of a tier for ten minutes while the buyer checks out.

        The returned ``session_id`` must be presented at purchase. Returns 409 with the current
        availability when not enough tickets are left, or with the remaining allowance when a
        per-customer limit would be exceeded.
        """
        event = event_service.get_published_event(slug)
        reservation = ReservationService(event).create_reservation(
            tier_id=payload.tier_id,
            quantity=payload.quantity,
            customer_email=payload.customer_email,
            customer_ip=get_client_ip(self.context.request),  # type: ignore[arg-type]
        )
        return 201, reservation

    @route.get(
        "/{slug}/reservations/{session_id}",
        url_name="get_reservation",
        response={200: schema.ReservationSchema, 404: ErrorResponse, 409: ErrorResponse},
    )
    def get_reservation(self, slug: str, session_id: str, tier_id: UUID | None = None) -> Reservation:
        """Check that a reservation is still live. Expired reservations are reported as 409."""
        event = event_service.get_published_event(slug)
        return ReservationService(event).get_reservation(session_id, tier_id=tier_id)

    @route.post(
        "/{slug}/purchase",
        url_name="purchase_tickets",
        response={200: schema.PurchaseResponseSchema, 500: ErrorResponse, 502: ErrorResponse, **ERROR_RESPONSES},
        throttle=CheckoutThrottle(),
    )
    def purchase(self, slug: str, payload: schema.PurchaseSchema) -> dict[str, t.Any]:
        """Pay for a reservation and receive the tickets.

        The price is always taken from the tier. Free tiers do not need a payment method. A 500 with
        a ``reference`` means the payment went through but the tickets could not be issued; the
        payment is refunded automatically.
        """
        event = event_service.get_published_event(slug)
        tier = event_service.get_event_tier(event, payload.tier_id)
        result = PurchaseService(event, tier).purchase(
            session_id=payload.session_id,
            quantity=payload.quantity,
            customer_email=payload.customer_email,
            customer_name=payload.customer_name,
            payment_method_id=payload.payment_method_id,
            customer_ip=get_client_ip(self.context.request),  # type: ignore[arg-type]
        )
        ticket_notification_service.handle_tickets_purchased(event, result)
        return {
            "tickets": result.tickets,
            "total_amount": result.total_amount,
            "customer_email": result.customer_email,
            "payment_intent_id": result.payment_intent_id,
            "purchased_at": timezone.now(),
        }

import typing as t
from uuid import UUID

from django.conf import settings
from django.db.models import QuerySet
from ninja import Query
from ninja.security import django_auth
from ninja_extra import api_controller, route

from common.schema import ErrorResponse
from common.throttling import ScanThrottle, UserDefaultThrottle
from events import models, schema
from events.service import event_service, redemption_service, refund_service, ticket_notification_service

from .permissions import IsOrganizationStaff
from .user_aware_controller import UserAwareController


@api_controller("/organizations/{slug}", auth=django_auth, tags=["Box Office"], permissions=[IsOrganizationStaff()])
class BoxOfficeController(UserAwareController):
    """Door scanning, refunds and cancellations for organization staff."""

    def get_organization(self, slug: str) -> models.Organization:
        """Get the organization, checking that the user operates it."""
        return t.cast(models.Organization, self.get_object_or_exception(models.Organization.objects.all(), slug=slug))

    def get_event(self, slug: str, event_id: UUID) -> models.Event:
        return event_service.get_organization_event(self.get_organization(slug), event_id)

    @route.post(
        "/tickets/scan",
        url_name="scan_ticket",
        response={200: schema.ScanResultSchema, 403: ErrorResponse},
        throttle=ScanThrottle(),
    )
    def scan_ticket(self, slug: str, payload: schema.ScanRequestSchema) -> schema.ScanResultSchema:
        """Validate a ticket at the door and mark it used.

        Always answers 200: ``valid`` tells whether to admit the holder and ``reason`` why not.
        Scanning the same code twice returns ALREADY_USED with the time of the first scan.
        """
        organization = self.get_organization(slug)
        result = redemption_service.scan_ticket(
            payload.redemption_code,
            organization=organization,
            scanned_by=self.user(),
            event_id=payload.event_id,
            device_id=payload.device_id,
        )
        return schema.ScanResultSchema.from_result(result)

    @route.get(
        "/events/{event_id}/scans",
        url_name="list_recent_scans",
        response={200: list[schema.RecentScanSchema], 404: ErrorResponse},
        throttle=UserDefaultThrottle(),
    )
    def list_recent_scans(
        self,
        slug: str,
        event_id: UUID,
        device_id: str | None = None,
        limit: int = Query(settings.RECENT_SCANS_DEFAULT_LIMIT, ge=1, le=100),
    ) -> QuerySet[models.Ticket]:
        """The most recently scanned tickets of an event, optionally only those of one device."""
        event = self.get_event(slug, event_id)
        return redemption_service.list_recent_scans(event, device_id=device_id, limit=limit)

    @route.post(
        "/events/{event_id}/tickets/{ticket_id}/refund",
        url_name="refund_ticket",
        response={200: schema.RefundResponseSchema, 400: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse},
        throttle=UserDefaultThrottle(),
    )
    def refund_ticket(
        self, slug: str, event_id: UUID, ticket_id: UUID, payload: schema.RefundRequestSchema
    ) -> schema.RefundResponseSchema:
        """Refund a ticket, in full by default.

        Only a full refund invalidates the ticket; after a partial refund it can still be scanned.
        The platform fee is not refunded.
        """
        event = self.get_event(slug, event_id)
        result = refund_service.refund_ticket(event, ticket_id, amount=payload.amount, reason=payload.reason)
        ticket_notification_service.handle_ticket_refunded(result, reason=payload.reason)
        return schema.RefundResponseSchema(
            refund_amount=result.refund_amount,
            is_full_refund=result.is_full_refund,
            stripe_refund_id=result.stripe_refund_id,
            ticket_status=result.ticket.status,
        )

    @route.post(
        "/events/{event_id}/tickets/{ticket_id}/cancel",
        url_name="cancel_ticket",
        response={200: schema.TicketSchema, 404: ErrorResponse, 409: ErrorResponse},
        throttle=UserDefaultThrottle(),
    )
    def cancel_ticket(self, slug: str, event_id: UUID, ticket_id: UUID) -> models.Ticket:
        """Cancel a valid ticket without refunding it. Used or refunded tickets cannot be cancelled."""
        event = self.get_event(slug, event_id)
        return refund_service.cancel_ticket(event, ticket_id)

from uuid import UUID

from events.exceptions import EventNotFoundError, InvalidTierError
from events.models import Event, Organization, TicketTier


def get_published_event(slug: str) -> Event:
    """Return a published event by slug, with its organization."""
    try:
        return Event.objects.published().with_organization().get(slug=slug)
    except Event.DoesNotExist as e:
        raise EventNotFoundError() from e


def get_organization_event(organization: Organization, event_id: UUID) -> Event:
    """Return an event of the organization regardless of its status."""
    try:
        return Event.objects.with_organization().get(organization=organization, pk=event_id)
    except Event.DoesNotExist as e:
        raise EventNotFoundError() from e


def get_event_tier(event: Event, tier_id: UUID) -> TicketTier:
    """Return a tier of the event. Inactive tiers are still returned so reserved units can be bought."""
    try:
        return TicketTier.objects.get(event=event, pk=tier_id)
    except TicketTier.DoesNotExist as e:
        raise InvalidTierError() from e

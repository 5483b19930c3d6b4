from .customer import Customer
from .event import Event
from .organization import Organization, Subscription
from .payment import ChargeRecord
from .ticket import Reservation, Ticket, TicketTier

__all__ = [
    "ChargeRecord",
    "Customer",
    "Event",
    "Organization",
    "Reservation",
    "Subscription",
    "Ticket",
    "TicketTier",
]
